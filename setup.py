# -*- coding: utf-8 -*-
from setuptools import setup, find_packages

AUTHOR = "Huberto Gastal Mayer"
EMAIL = "hubertogm@gmail.com"
LICENSE = "GPLv3"
DESCRIPTION = "ReqHooks - A CLI tool for executing HTTP request collections with pre-request/post-response hooks"

setup(
    name="reqhooks",
    version="1.0.0",
    description=DESCRIPTION,
    long_description=f"{DESCRIPTION}. Criado por {AUTHOR}.",
    author=AUTHOR,
    author_email=EMAIL,
    license=LICENSE,

    # find_packages() finds the 'reqhooks' directory (tests are not installed)
    packages=find_packages(exclude=['tests', 'tests.*']),

    install_requires=[
        'requests',
        'PyYAML',
        'Faker',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },

    # Creates the 'reqhooks' command in the terminal
    entry_points={
        'console_scripts': [
            'reqhooks=reqhooks.reqhooks:main',
        ],
    },

    classifiers=[
        'License :: OSI Approved :: GNU General Public License v3 (GPLv3)',
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
        'Environment :: Console',
        'Topic :: Internet :: WWW/HTTP',
        'Topic :: Software Development :: Testing',
    ],
    python_requires='>=3.7',
)
