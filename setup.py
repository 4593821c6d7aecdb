from setuptools import setup

setup(
    name = 'eas_client',
    version = '2.0',
    description = 'Exchange ActiveSync client in python, based on twisted.',

    author = 'Braden Thomas',
    author_email =  'drspringfield@gmail.com',
    packages = ["eas_client"],
    package_dir = {'': 'src'},
    python_requires = '>=3.8',
    install_requires = [
        'Twisted>=21.2.0',
        'lxml',
        'zope.interface',
    ],
    extras_require = {
        'test': ['pytest'],
    },
    entry_points = {
        'console_scripts': ['eas-client = eas_client.cli:main'],
    },
)
