"""
Rebuild the tutorial notebooks.

Every tutorial examples/<topic>/<name>.py is a percent-format script
("# %%" code cells, "# %% [markdown]" text cells) and becomes the notebook
examples/<topic>/<name>.ipynb. The notebooks are not executed.

    $ python examples/make.py
"""
import glob
import logging
import os

import jupytext

logger = logging.getLogger(__name__)

EXAMPLES = os.path.dirname(os.path.abspath(__file__))


def build(directory=EXAMPLES, output=None):
    """Convert the tutorials below directory into notebooks.

    Parameters
    ----------
    directory: str
        The folder holding one subfolder of tutorials per topic.

    output: str, optional (default=None)
        Where to write the notebooks, mirroring the subfolders. Next to the
        scripts if None.

    Returns
    -------
    The paths of the written notebooks: list
    """
    notebooks = []
    for script in sorted(glob.glob(os.path.join(directory, "*", "*.py"))):
        target = os.path.splitext(script)[0] + ".ipynb"
        if output is not None:
            target = os.path.join(output, os.path.relpath(target, directory))
            os.makedirs(os.path.dirname(target), exist_ok=True)
        jupytext.write(jupytext.read(script, fmt="py:percent"), target)
        logger.info("%s -> %s", script, target)
        notebooks.append(target)
    return notebooks


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    build()
