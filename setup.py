"""Setup script for the derhttp package."""

from setuptools import setup, find_packages

requires = ["bitstring>=4.0,<5", "click>=8.0"]

extras_require = {"trio": ["trio>=0.22"], "test": ["pytest>=7.0", "trio>=0.22"]}

__version__ = None
exec(open("src/derhttp/version.py").read())

setup(
    name="derhttp",
    version=__version__,
    package_dir={"": "src"},
    packages=find_packages("src", exclude=["test"]),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=requires,
    extras_require=extras_require,
    entry_points={"console_scripts": ["derhttp-post = derhttp.cli:post_command"]},
)
