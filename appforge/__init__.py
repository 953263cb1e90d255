"""appforge: build portable application bundles from a declarative recipe."""

from appforge.__version__ import __version__
