from setuptools import setup, find_packages

with open("requirements.txt") as f:
    requirements = [line.strip() for line in f if line.strip() and not line.startswith("#")]

setup(
    name="toolchat",
    version="0.1.0",
    description="Context budget management for tool-augmented LLM conversations",
    author="Toolchat Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "toolchat=toolchat.cli.__main__:main",
        ],
    },
    python_requires=">=3.11",
)
