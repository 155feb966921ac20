"""
Pytest configuration and shared fixtures for npegen tests.
"""

import pytest
from pathlib import Path
import sys

# Add src to path for imports
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root / "src"))

from npegen.config import CodegenConfig, GenerationConfig, PathsConfig
from npegen.generators import ExpandedFunction
from npegen.parser import AnnotationScanner
from npegen.types.expander import CombinationExpander
from npegen.types.resolver import TypeSetResolver


# =============================================================================
# Annotated Sources
# =============================================================================

FOO_SOURCE = """\
#include <string>

npe_function(foo)
npe_arg(a, dense_float, dense_double)
npe_arg(b, npe_matches(a))
npe_arg(c, dense_int, dense_long)
npe_arg(d, std::string)
npe_arg(e, int)
npe_arg(f, sparse_float, sparse_double)
npe_doc("Combine a dense block with a sparse matrix.")
npe_begin_code()
    npe_Matrix_a out = a + b;
    // npe_Matrix_a stays as written in comments
    return npe::move(out);
npe_end_code()
"""

SCALE_SOURCE = """\
#include <cmath>

npe_function(scale)
npe_arg(x, dense_f32, dense_f64, csr_f64)
npe_default_arg(factor, double, 2.0)
npe_doc(R"(Scale a matrix by a factor.)")
npe_begin_code()
    npe_Matrix_x out = x * static_cast<npe_Scalar_x>(factor);
    return npe::move(out);
npe_end_code()

static int helper() { return 1; }
"""

NOARG_SOURCE = """\
npe_function(answer)
npe_begin_code()
    return pybind11::int_(42);
npe_end_code()
"""


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def foo_source():
    return FOO_SOURCE


@pytest.fixture
def scale_source():
    return SCALE_SOURCE


@pytest.fixture
def noarg_source():
    return NOARG_SOURCE


@pytest.fixture
def config(tmp_path):
    """Configuration rooted at a temporary project directory."""
    return CodegenConfig(
        project_root=tmp_path,
        paths=PathsConfig(source_dir=Path("src"), output_dir=Path("out")),
        generation=GenerationConfig(),
    )


@pytest.fixture
def source_dir(tmp_path):
    """Empty annotated source directory inside the temporary project."""
    path = tmp_path / "src"
    path.mkdir()
    return path


# =============================================================================
# Helper Functions
# =============================================================================

def resolve_source(text, path=None):
    """Scan and resolve annotated source text."""
    spec = AnnotationScanner().parse_text(text, path=path)
    return TypeSetResolver().resolve(spec)


def expand_source(text, max_combinations=256, path=None):
    """Scan, resolve and expand annotated source text."""
    spec = resolve_source(text, path=path)
    table = CombinationExpander(max_combinations).expand(spec)
    return ExpandedFunction(spec=spec, table=table)


def write_source(directory, name, text):
    """Write an annotated source file and return its path."""
    path = Path(directory) / name
    path.write_text(text)
    return path
