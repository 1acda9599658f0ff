from setuptools import setup, find_namespace_packages

setup(
    name='atmfjstc-obby-file',
    version='0.2.1',

    author_email='atmfjstc@protonmail.com',

    package_dir={'': 'src'},
    packages=find_namespace_packages(where='src', include=['atmfjstc', 'atmfjstc.*']),

    install_requires=[
        'termcolor>=1.1, <4',
        'colorama>=0.4.6, <2',
    ],

    extras_require={
        'test': [
            'pytest>=7',
        ],
    },

    entry_points={
        'console_scripts': [
            'obby-file=atmfjstc.lib.obby_file.cli:main',
        ],
    },

    zip_safe=True,

    description="Reader for OBBY archives, the package format used for Obsidian plugins",

    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Environment :: Console",
        "Topic :: System :: Archiving",
        "Typing :: Typed",
    ],
    python_requires='>=3.7',
)
