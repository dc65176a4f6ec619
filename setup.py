"""
vidscribe-worker — setuptools build script.

Usage:
    # Development (editable install):
    pip install -e .[test]

    # Run the worker:
    vidscribe-worker
"""

from setuptools import setup

APP_NAME = "vidscribe-worker"

setup(
    name=APP_NAME,
    version="1.0.0",
    description="Queue-driven YouTube transcript worker",
    packages=[
        "vidscribe",
        "vidscribe.core",
    ],
    py_modules=["main"],
    install_requires=[
        "requests>=2.28.0",
        "yt-dlp>=2024.3.10",
        "boto3>=1.28.0",
        "supabase>=2.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "vidscribe-worker=main:main",
        ],
    },
)
