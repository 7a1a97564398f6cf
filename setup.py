import os
import codecs
from setuptools import setup, find_packages

HERE = os.path.abspath(os.path.dirname(__file__))


def read(*parts):
    with codecs.open(os.path.join(HERE, *parts), 'rb', 'utf-8') as f:
        return f.read()


setup(
    version='0.1.0',
    name='txalpn',
    description='TLS-ALPN-01 challenge test server for Twisted',
    license='Expat',
    long_description=read('README.rst'),
    packages=find_packages(where='src') + ['twisted.plugins'],
    package_dir={'': 'src'},
    zip_safe=False,
    python_requires='>=3.8',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Natural Language :: English',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: Implementation :: CPython',
        'Topic :: Software Development :: Testing',
        ],
    install_requires=[
        'attrs>=22.2.0',
        'cryptography>=42.0.0',
        'eliot>=1.13.0',
        'pyasn1>=0.4.8',
        'pyopenssl>=23.2.0',
        'twisted[tls]>=23.8.0',
        'zope.interface',
        ],
    extras_require={
        'test': [
            'acme>=2.0.0',
            'fixtures>=1.4.0',
            'hypothesis>=6.0.0',
            'josepy',
            'service_identity>=18.1.0',
            'testtools>=2.5.0',
            'treq>=22.1.0',
            ],
        },
    )
