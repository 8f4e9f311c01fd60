import setuptools
from os.path import join, dirname

def get_file_contents(filename):
    package_directory = dirname(__file__)
    with open(join(package_directory, filename), 'r', encoding='utf-8') as file:
        contents = file.read()
    return contents

long_description = """Nearest-neighbor distances and radius-bounded neighbor counts between phenotypes of
cells, for single fields and for batches of fields.
"""
version = get_file_contents(join('spatialproximitytoolbox', 'version.txt')).strip()

setuptools.setup(
    name='spatialproximitytoolbox',
    version=version,
    description='Spatial proximity queries over labeled cell points.',
    long_description=long_description,
    long_description_content_type='text/markdown',
    packages=[
        'spatialproximitytoolbox',
        'spatialproximitytoolbox.engine',
        'spatialproximitytoolbox.source_file_parsers',
        'spatialproximitytoolbox.standalone_utilities',
    ],
    classifiers=[
        'Programming Language :: Python :: 3',
        'License :: OSI Approved :: Apache Software License',
        'Topic :: Scientific/Engineering',
        'Intended Audience :: Science/Research',
    ],
    package_data={
        'spatialproximitytoolbox': [
            'version.txt',
        ],
    },
    python_requires='>=3.10',
    install_requires=[
        'numpy>=1.22.3',
        'scipy>=1.8.0',
        'pandas>=1.5.0',
        'attrs>=22.2.0',
        'pydantic>=2.0',
    ],
    extras_require={
        'index': ['scikit-learn>=1.0'],
        'test': ['pytest>=7.0', 'scikit-learn>=1.0'],
        'all': ['scikit-learn>=1.0', 'pytest>=7.0'],
    },
)
