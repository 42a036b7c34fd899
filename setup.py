from setuptools import setup, find_packages


setup(
    name="savesplit",
    version="0.1",
    packages=find_packages(include=["savesplit", "savesplit.*"]),
    description="Split/reassemble chunk-encrypted FAR4 game saves and convert their levels to JSON and back.",
    author="vercingetorx",
    install_requires=[
        "pycryptodomex>=3.23.0",
    ],
    entry_points={
        "console_scripts": [
            "savesplit=savesplit.cli:main",
        ]
    },
)
