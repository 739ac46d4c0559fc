from setuptools import setup, find_packages

setup(
    name             = 'mind-receiver',
    version          = '1.0.0',
    description      = 'mINd-RECEIVER — Inbound SMS & MMS ingestion core · Nous Loop Solutions',
    author           = 'Nous Loop Solutions',
    packages         = find_packages(exclude=['tests*']),
    install_requires = open('requirements.txt').read().splitlines(),
    extras_require   = {
        'test': ['pytest>=7.0', 'httpx>=0.24'],
    },
    entry_points     = {
        'console_scripts': [
            'receiver = receiver.cli:main',
        ],
    },
    python_requires  = '>=3.10',
    classifiers      = [
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
    ],
)
