import configparser
import os

from setuptools import setup

HERE = os.path.dirname(os.path.abspath(__file__))


def get_requirements():
    """Runtime requirements, kept in one place in setup.cfg"""

    config = configparser.ConfigParser()
    config.read(os.path.join(HERE, "setup.cfg"))
    return config["options"]["install_requires"].split()


if __name__ == "__main__":
    setup(
        install_requires=get_requirements(),
        zip_safe=False,
    )
