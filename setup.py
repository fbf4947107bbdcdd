from setuptools import setup, find_packages

setup(
    name="debjni",
    version="0.1.0",
    description="Bundle the shared libraries of APT repository packages into Android projects",
    author="Arsen Arsenovic",
    author_email="arsen@aarsen.me",
    packages=find_packages(exclude=["tests", "tests.*"]),
    license="AGPL-3.0-only",
    python_requires=">=3.11",
    install_requires=[
        "Jinja2",
        "pydantic>=2",
        "requests",
        "toml",
        # package payloads and indices may be zstd-compressed
        "zstandard"
    ],
    extras_require={
        "test": [
            "pytest"
        ]
    },
    package_data={
        "debjni.scaffold": ["templates/*"]
    },
    include_package_data=True,
    entry_points={
        "console_scripts": [
            "debjni = debjni.cli:main"
        ]
    }
)
