from setuptools import setup, find_packages

# Read the contents of your README file
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Read the contents of your requirements file
with open("requirements.txt", "r", encoding="utf-8") as f:
    requirements = [line.strip() for line in f if line.strip() and not line.startswith("#")]

setup(
    name="depth2rosbridge",
    version="0.1.0",
    description="A bridge publishing depth, color and pose frames to a rosbridge WebSocket server.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Topic :: System :: Networking",
        "Topic :: Scientific/Engineering :: Image Processing",
        "Framework :: AsyncIO",
    ],
    python_requires='>=3.8',
    entry_points={
        'console_scripts': [
            'depth2rosbridge=depth2rosbridge.cli:main',
        ],
    },
)
