import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="nsecwalker",
    version="1.0.0",
    author="Carlos Perez",
    author_email="carlos_perez@darkoperator.com",
    description="Concurrent DNSSEC NSEC zone walker",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(exclude=["tests"]),
    python_requires='>=3.10',
    install_requires=[
        "dnspython>=2.1.0",
        "httpx>=0.23",
        "loguru>=0.6",
        "netaddr>=0.8",
        "stamina>=24.2.0",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "nsecwalker = nsecwalker.__main__:main"
        ]
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "License :: OSI Approved :: GNU General Public License v2 (GPLv2)",
        "Operating System :: OS Independent",
    ],
)
