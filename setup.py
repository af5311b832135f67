from setuptools import setup, find_packages

setup(
    name="keysearch",
    version="0.1",
    package_dir={'': 'src'},
    packages=find_packages('src'),
    install_requires=[
        'pycryptodome',
        'pyyaml',
        'numpy',
        'scipy',
        'python-dotenv'
    ],
    extras_require={
        'test': ['pytest']
    },
    entry_points={
        'console_scripts': [
            'keysearch-allocator=keysearch.main:allocator_main',
            'keysearch-worker=keysearch.main:worker_main',
            'keysearch-encrypt=keysearch.main:encrypt_main',
        ]
    },
)
