"""
Tests for the Python runtime: type tags, views and dispatch.
"""

from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest
import scipy.sparse as sp

from npegen.errors import (
    NpeError,
    NPE_ERROR_INTERNAL,
    NPE_ERROR_TYPE_MISMATCH,
    TypeMismatchError,
    ViewReleasedError,
)
from npegen.runtime import (
    DenseView,
    Dispatcher,
    SparseView,
    move,
    type_of,
    type_tag,
)
from npegen.types import ConcreteType, ElementType, SparseLayout

from conftest import FOO_SOURCE, NOARG_SOURCE, SCALE_SOURCE, expand_source


NORM_SOURCE = """\
npe_function(norm)
npe_arg(x, dense_f64)
npe_default_arg(mode, std::string, std::string("abs"))
npe_begin_code()
    return pybind11::none();
npe_end_code()
"""


def sample_value(ctype):
    """A small runtime value of the given concrete type."""
    if ctype.is_dense:
        return np.zeros((2, 3), dtype=ctype.element.value)
    if ctype.is_sparse:
        cls = sp.csr_matrix if ctype.layout is SparseLayout.CSR else sp.csc_matrix
        return cls(np.eye(3), dtype=ctype.element.value)
    return "text" if "string" in ctype.host_type else 1


def echo_dispatcher(source):
    """Dispatcher whose every specialization returns its own identifier."""
    table = expand_source(source).table
    impls = {ident: (lambda *args, ident=ident: ident) for ident in table.identifiers}
    return Dispatcher(table, impls)


def foo_args(a=np.float64, b=np.float64, c=np.int32, f=np.float32):
    return (
        np.ones((2, 2), dtype=a),
        np.ones((2, 2), dtype=b),
        np.ones(4, dtype=c),
        "label",
        7,
        sp.csr_matrix(np.eye(2), dtype=f),
    )


class TestTypeTags:
    """Test runtime type reporting."""

    @pytest.mark.parametrize("value, tag", [
        (np.zeros(3, dtype=np.float32), "dense_f32"),
        (np.zeros((2, 2), dtype=np.int64), "dense_i64"),
        (sp.csr_matrix((2, 2), dtype=np.float64), "csr_f64"),
        (sp.csc_matrix((2, 2), dtype=np.int32), "csc_i32"),
    ])
    def test_supported(self, value, tag):
        assert type_tag(value) == tag

    def test_no_widening(self):
        """float32 is never reported as float64."""
        assert type_of(np.zeros(1, dtype=np.float32)) == ConcreteType.dense(ElementType.float32)

    def test_unsupported(self):
        assert type_of(np.zeros(3, dtype=np.float16)) is None
        assert type_tag(np.zeros(3, dtype=np.float16)) == "dense<float16>"
        assert type_tag(sp.coo_matrix((2, 2))) == "coo<float64>"
        assert type_tag("abc") == "str"


class TestViews:
    """Test zero-copy views and their lifetime."""

    def test_dense_view_shares_memory(self):
        a = np.arange(6, dtype=np.float64).reshape(2, 3)
        view = DenseView(a)
        assert np.shares_memory(view.array, a)
        view.array[0, 0] = 42.0
        assert a[0, 0] == 42.0
        assert view.shape == (2, 3)

    def test_sparse_view_shares_buffers(self):
        m = sp.csr_matrix(np.eye(3), dtype=np.float32)
        view = SparseView(m)
        assert np.shares_memory(view.data, m.data)
        assert np.shares_memory(view.indices, m.indices)
        assert np.shares_memory(view.indptr, m.indptr)
        assert view.nnz == 3
        assert view.layout is SparseLayout.CSR
        assert np.shares_memory(view.to_scipy().data, m.data)

    def test_released_view_raises(self):
        view = DenseView(np.zeros(3))
        view.release()
        assert not view.is_valid
        with pytest.raises(ViewReleasedError):
            view.array

    def test_context_manager_releases(self):
        with SparseView(sp.csc_matrix(np.eye(2))) as view:
            assert view.shape == (2, 2)
        with pytest.raises(ViewReleasedError):
            view.data

    def test_wrong_input(self):
        with pytest.raises(TypeError):
            DenseView([1, 2, 3])
        with pytest.raises(TypeError):
            SparseView(sp.coo_matrix((2, 2)))


class TestDispatchFoo:
    """Test dispatch of the six-argument foo declaration."""

    def test_selects_unique_specialization(self):
        foo = echo_dispatcher(FOO_SOURCE)
        assert foo(*foo_args()) == "npe_foo__dense_f64__dense_i32__csr_f32"

    def test_selected_types(self):
        foo = echo_dispatcher(FOO_SOURCE)
        combo = foo.select(*foo_args())
        assert combo.tags == ("dense_f64", "dense_f64", "dense_i32", "std::string", "int", "csr_f32")

    def test_deterministic(self):
        foo = echo_dispatcher(FOO_SOURCE)
        args = foo_args()
        assert len({foo(*args) for _ in range(20)}) == 1

    def test_every_combination_reachable(self):
        """Values built from each combination dispatch back to it."""
        foo = echo_dispatcher(FOO_SOURCE)
        for combo in foo.table:
            args = [sample_value(t) for t in combo.types]
            assert foo(*args) == combo.identifier

    def test_keyword_arguments(self):
        foo = echo_dispatcher(FOO_SOURCE)
        a, b, c, d, e, f = foo_args()
        assert foo(a, b, c, d=d, e=e, f=f) == foo(a, b, c, d, e, f)

    def test_mismatch_names_argument(self):
        foo = echo_dispatcher(FOO_SOURCE)
        with pytest.raises(TypeMismatchError) as exc_info:
            foo(*foo_args(a=np.float32, b=np.float64))
        err = exc_info.value
        assert err.argument == "b"
        assert err.actual == "dense_f64"
        assert err.code == NPE_ERROR_TYPE_MISMATCH
        assert isinstance(err, TypeError)

    def test_mismatch_lists_all_combinations(self):
        foo = echo_dispatcher(FOO_SOURCE)
        with pytest.raises(TypeMismatchError) as exc_info:
            foo(*foo_args(c=np.float64))
        err = exc_info.value
        assert err.argument == "c"
        assert err.accepted == foo.table.accepted()
        message = str(err)
        for row in foo.table.accepted():
            assert "(" + ", ".join(row) + ")" in message

    def test_unsupported_dtype_mismatch(self):
        foo = echo_dispatcher(FOO_SOURCE)
        with pytest.raises(TypeMismatchError, match=r"dense<float16>"):
            foo(*foo_args(a=np.float16))

    def test_no_coercion(self):
        """A csc matrix is not accepted where only csr is declared."""
        foo = echo_dispatcher(FOO_SOURCE)
        args = list(foo_args())
        args[5] = sp.csc_matrix(np.eye(2), dtype=np.float32)
        with pytest.raises(TypeMismatchError) as exc_info:
            foo(*args)
        assert exc_info.value.argument == "f"

    def test_concurrent_calls(self):
        foo = echo_dispatcher(FOO_SOURCE)
        args = foo_args()
        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(lambda _: foo(*args), range(32)))
        assert set(results) == {"npe_foo__dense_f64__dense_i32__csr_f32"}


class TestDispatchCalls:
    """Test argument binding, views and ownership across a call."""

    def test_default_argument(self):
        table = expand_source(SCALE_SOURCE).table
        scale = Dispatcher(table)

        @scale.register("npe_scale__dense_f64")
        def _(x, factor):
            return x.array * factor

        out = scale(np.ones(3))
        np.testing.assert_allclose(out, [2.0, 2.0, 2.0])
        np.testing.assert_allclose(scale(np.ones(3), factor=0.5), [0.5, 0.5, 0.5])

    def test_host_only_default_is_required(self):
        """A default with no Python literal form must be passed explicitly."""
        norm = Dispatcher(
            expand_source(NORM_SOURCE).table,
            {"npe_norm__dense_f64": lambda x, mode: mode},
        )
        with pytest.raises(TypeError, match="missing required argument 'mode'"):
            norm(np.zeros(2))
        assert norm(np.zeros(2), "max") == "max"
        assert norm(np.zeros(2), mode="sum") == "sum"

    def test_views_released_after_call(self):
        table = expand_source(SCALE_SOURCE).table
        seen = []

        def keep(x, factor):
            seen.append(x)
            return None

        scale = Dispatcher(table, {"npe_scale__csr_f64": keep})
        scale(sp.csr_matrix(np.eye(2)))
        assert isinstance(seen[0], SparseView)
        with pytest.raises(ViewReleasedError):
            seen[0].data

    def test_moved_value_survives(self):
        table = expand_source(SCALE_SOURCE).table
        scale = Dispatcher(table, {"npe_scale__dense_f32": lambda x, factor: move(x)})
        a = np.ones(4, dtype=np.float32)
        out = scale(a)
        assert isinstance(out, np.ndarray)
        assert np.shares_memory(out, a)
        out[0] = 3.0
        assert a[0] == 3.0

    def test_moved_sparse_value_survives(self):
        table = expand_source(SCALE_SOURCE).table
        scale = Dispatcher(table, {"npe_scale__csr_f64": lambda x, factor: move(x)})
        m = sp.csr_matrix(np.eye(3))
        out = scale(m)
        assert sp.issparse(out)
        assert np.shares_memory(out.data, m.data)

    def test_generic_function(self):
        answer = echo_dispatcher(NOARG_SOURCE)
        assert answer() == "npe_answer__generic"

    def test_missing_implementation(self):
        scale = Dispatcher(expand_source(SCALE_SOURCE).table)
        with pytest.raises(NpeError) as exc_info:
            scale(np.ones(2))
        assert exc_info.value.code == NPE_ERROR_INTERNAL

    def test_register_unknown_identifier(self):
        scale = Dispatcher(expand_source(SCALE_SOURCE).table)
        with pytest.raises(KeyError):
            scale.register("npe_scale__dense_i32", lambda x, factor: x)

    @pytest.mark.parametrize("args, kwargs, fragment", [
        ((1, 2, 3), {}, "takes 2 arguments"),
        ((), {}, "missing required argument 'x'"),
        ((1,), {"y": 2}, "unexpected keyword argument 'y'"),
        ((1,), {"x": 2}, "multiple values for argument 'x'"),
    ])
    def test_bind_errors(self, args, kwargs, fragment):
        scale = Dispatcher(expand_source(SCALE_SOURCE).table)
        with pytest.raises(TypeError, match=fragment):
            scale.bind(*args, **kwargs)


class TestDispatcherConstruction:
    """Test the alternative constructors."""

    def test_from_manifest(self, tmp_path):
        table = expand_source(FOO_SOURCE).table
        path = tmp_path / "foo.npe.json"
        path.write_text(table.to_json())
        foo = Dispatcher.from_manifest(path)
        assert foo.table == table
        assert foo.name == "foo"

    def test_from_source(self):
        foo = Dispatcher.from_source(FOO_SOURCE)
        assert len(foo.table) == 8
        assert "8 specialization(s)" in repr(foo)
