import shutil
import tempfile
from pathlib import Path


def before_scenario(context, scenario):
    # Scratch directory for documents, plan files and reports
    context.workdir = Path(tempfile.mkdtemp(prefix="apiping-"))
    context.report = None


def after_scenario(context, scenario):
    shutil.rmtree(context.workdir, ignore_errors=True)
