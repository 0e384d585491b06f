"""
Test configuration for MinRuby tests
"""

import pytest
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from parsing import create_parser
from interpreter import make_compat_context, make_execution_context, make_global_env, make_local_env


@pytest.fixture
def parser():
  """A fresh parser instance"""
  return create_parser()


@pytest.fixture
def context():
  """Default execution context (no compatibility quirks)"""
  return make_execution_context()


@pytest.fixture
def compat_context():
  """Execution context reproducing the classic evaluator"""
  return make_compat_context()


@pytest.fixture
def env():
  return make_local_env()


@pytest.fixture
def genv():
  return make_global_env()


@pytest.fixture
def samples_dir():
  """Directory of sample programs with their expected output"""
  return project_root / "samples"
