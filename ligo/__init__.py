from ligo.__version__ import version as __version__
