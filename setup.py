"""Setup script for the emotion recognition package."""

from setuptools import setup, find_packages
from pathlib import Path

# Read README if it exists
readme_file = Path(__file__).parent / "README.md"
long_description = ""
if readme_file.exists():
    long_description = readme_file.read_text(encoding="utf-8")

setup(
    name="emotionrec",
    version="0.1.0",
    description="Real-time facial emotion recognition for live video",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Emotion Recognition Team",
    packages=find_packages(exclude=["tests*", "docs*"]),
    python_requires=">=3.9",
    install_requires=[
        "onnxruntime>=1.16.3",
        "opencv-python>=4.9.0,<5",  # 5.x drops CascadeClassifier used by the default detector
        "numpy>=1.26.0",
        "pyyaml>=6.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "black",
            "flake8",
            "mypy",
        ],
        "retina": [
            "insightface>=0.7.3",
        ],
    },
    entry_points={
        "console_scripts": [
            "emotionrec-live=scripts.run_live:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
