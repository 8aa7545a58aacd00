from setuptools import setup, find_packages

# Read the README.md for the long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="stagefs",
    version="0.1.0",
    packages=find_packages(where=".", include=["stagefs", "stagefs.*"]),
    package_dir={"": "."},
    install_requires=[
        "argparse>=1.4.0",
        "filelock>=3.18.0",
        "mcp[cli]>=1.5.0,<2",
    ],
    extras_require={
        "test": ["pytest>=8.0.0"],
    },
    author="0kenx",
    author_email="",
    entry_points={
        "console_scripts": [
            "stagefs-server=stagefs.server:main",
            "stagefs-history=stagefs.cli:main",
        ],
    },
    description="MCP server for staged, versioned file editing",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/0kenx/mcp-servers",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.12",
)
