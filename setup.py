#!/usr/bin/env python

from setuptools import find_packages, setup

setup(
    name='jc_workflows',
    # This tag is automatically updated by bumpversion
    version='0.4.0',
    description='Cohort-size aware GATK joint-calling workflow',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    license='MIT',
    packages=find_packages(exclude=['test', 'test.*']),
    install_requires=[
        'networkx>=2.8.3',
        'pandas',
        'cloudpathlib[gs]',
        'coloredlogs',
        'click',
        'tenacity',
        'google-api-core',
        'toml',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-xdist',
            'pytest-mock',
            'coverage',
        ],
    },
    package_data={
        'jc_workflows': ['defaults.toml'],
    },
    keywords='bioinformatics',
    classifiers=[
        'Environment :: Console',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: MIT License',
        'Natural Language :: English',
        'Operating System :: MacOS :: MacOS X',
        'Operating System :: POSIX',
        'Operating System :: Unix',
        'Programming Language :: Python',
        'Topic :: Scientific/Engineering',
        'Topic :: Scientific/Engineering :: Bio-Informatics',
    ],
    entry_points={
        'console_scripts': [
            # Joint-call a cohort of GVCFs listed in a sample map
            'run_joint_calling = jc_workflows.scripts.run_joint_calling:cli_main',
        ],
    },
)
