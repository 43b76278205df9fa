import os
from setuptools import setup, find_packages


NAME = 'vpool'

VERSION = '0.1'

DESCRIPTION = """
Provisioning of single-use nodes from a ZooKeeper coordinated node pool.
"""

LICENSE = 'MIT'

AUTHOR = 'vpool developers', 'vpool@example.org'

KEYWORDS = 'nodepool zookeeper provisioning ci twisted'

CLASSIFIERS = [
    'Framework :: Twisted',
    'Programming Language :: Python :: 3',
]


def read(fname, fail_silently=False):
    """
    Utility function to read the README file.
    """
    try:
        with open(os.path.join(os.path.dirname(__file__), fname)) as fh:
            return fh.read()
    except IOError:
        if not fail_silently:
            raise
        return ''


def requirements(fname):
    """
    Utility function to create a list of requirements from the output of the
    pip freeze command saved in a text file.
    """
    packages = read(fname).split('\n')
    packages = (p.strip() for p in packages)
    packages = (p for p in packages if p and not p.startswith('#'))
    return list(packages)


setup(
    name=NAME,
    version=VERSION,
    description=' '.join(DESCRIPTION.strip().splitlines()),
    long_description=read('README.md', True),
    classifiers=CLASSIFIERS,
    keywords=KEYWORDS,
    author=AUTHOR[0],
    author_email=AUTHOR[1],
    license=LICENSE,
    packages=find_packages(exclude=['docs']),
    python_requires='>=3.7',
    install_requires=requirements('requirements.txt'),
    extras_require={
        'test': ['pytest'],
    },
    entry_points=read('entry-points.ini', True),
)
