"""Color and background color BBCode for markdown rendering

Converts [color=...] and [bgcolor=...] BBCode tags in user text to styled
spans, either as a markdown-it inline rule or by pre-processing the text, and
sanitizes the result so only single color declarations survive.
"""

VERSION = "1.0.0"

classifiers = """\
Development Status :: 5 - Production/Stable
Intended Audience :: Developers
Programming Language :: Python
Programming Language :: Python :: 3
License :: OSI Approved :: Python Software Foundation License
Operating System :: OS Independent
Topic :: Text Processing :: Markup
"""

from setuptools import setup

doclines = __doc__.split("\n")

setup( install_requires=['markdown-it-py', 'bleach[css]'],
       extras_require={'test': ['pytest']},
       name='bbcolor',
       version = VERSION,
       license = "Python Software Foundation License",
       platforms = ['any'],
       description = doclines[0],
       long_description = '\n'.join(doclines[2:]),
       packages = ["bbcolor"],
       python_requires = '>=3.8',
       classifiers = classifiers.splitlines(),
       )
