"""
Setup configuration for the depth-camera object area and height scanner
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_path = Path(__file__).parent / "README.md"
long_description = readme_path.read_text() if readme_path.exists() else ""

setup(
    name="depth-scan",
    version="0.1.0",
    description="Object footprint area and height measurement from depth frames",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Depth Scan Team",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.8",
    install_requires=[
        "rich>=13.7.0",
        # Depth processing dependencies
        "opencv-python>=4.8.1,<5.0",
        "numpy>=1.24.3,<2.0",
        "Pillow>=10.1.0,<11.0",
        "PyYAML>=6.0,<7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.3,<8.0",
            "pytest-cov>=4.1.0,<5.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "depth-scan=depth_scan.cli:main",
        ]
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
