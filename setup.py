from setuptools import setup

setup(name='PyLungReg',
      version='0.1',
      description='Multiscale Demons registration of 4D thoracic CT with SimpleITK, and landmark based evaluation of the registration accuracy.',
      license='LICENSE',
      packages=[
        'lungreg',
        'lungreg.evaluation',
        'lungreg.ImagingDS',
        'lungreg.ImagingTools',
        'lungreg.io',
        'lungreg.plots',
        'lungreg.registration',
        'lungreg.utils'],
      package_data={'lungreg': ['data/*.json']},
      include_package_data=True,
      install_requires = [
          'numpy', 'matplotlib', 'pandas', 'simpleitk'
      ],
      extras_require={
          'test': ['pytest']
      },
      zip_safe=False)
