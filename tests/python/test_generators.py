"""
Tests for the C++ emitters, stub and manifest generators.
"""

import json

import pytest

from npegen.generators import (
    DispatcherEmitter,
    ManifestGenerator,
    ModuleRegistrationEmitter,
    NativeSourceGenerator,
    RegistrationEmitter,
    SpecializationEmitter,
    StubGenerator,
)
from npegen.generators.base import cpp_raw_string_literal, cpp_string_literal
from npegen.types import ConcreteType, CppTypeMapper, ElementType, SparseLayout

from conftest import FOO_SOURCE, NOARG_SOURCE, SCALE_SOURCE, expand_source


EIGEN_F64 = "Eigen::Matrix<double, Eigen::Dynamic, Eigen::Dynamic, Eigen::RowMajor>"


class TestCppTypeMapper:
    """Test C++ spellings of concrete types."""

    def test_dense(self):
        mapper = CppTypeMapper()
        ctype = ConcreteType.dense(ElementType.float64)
        assert mapper.param_type(ctype) == "npe::dense_view<double>"
        assert mapper.matrix_type(ctype) == EIGEN_F64
        assert mapper.type_tag(ctype) == "npe::type_tag::dense_f64"

    def test_sparse(self):
        mapper = CppTypeMapper()
        ctype = ConcreteType.sparse(ElementType.int32, SparseLayout.CSC)
        assert mapper.param_type(ctype) == "npe::sparse_view<std::int32_t, Eigen::ColMajor>"
        assert mapper.matrix_type(ctype) == "Eigen::SparseMatrix<std::int32_t, Eigen::ColMajor>"
        assert mapper.pyi_type(ctype) == "scipy.sparse.csc_matrix"

    def test_opaque(self):
        mapper = CppTypeMapper()
        ctype = ConcreteType.opaque("std::string")
        assert mapper.param_type(ctype) == "std::string"
        assert mapper.pyi_type(ctype) == "str"
        with pytest.raises(ValueError):
            mapper.type_tag(ctype)


class TestSpecializationEmitter:
    """Test per-combination function emission."""

    def test_one_function_per_combination(self):
        unit = expand_source(FOO_SOURCE)
        emitted = SpecializationEmitter().emit(unit)
        assert len(emitted) == 8
        for combo, text in zip(unit.table, emitted):
            assert f"static pybind11::object {combo.identifier}(" in text

    def test_aliases_substituted(self):
        unit = expand_source(FOO_SOURCE)
        text = SpecializationEmitter().emit_one(unit, unit.table[4])
        assert f"{EIGEN_F64} out = a + b;" in text
        assert "npe::dense_view<double> a," in text
        assert "npe::sparse_view<float, Eigen::RowMajor> f" in text
        assert "std::string d," in text

    def test_comments_and_strings_kept(self):
        """Test that aliases in comments and string literals are not rewritten."""
        emitter = SpecializationEmitter()
        body = 'npe_Scalar_x s; // npe_Scalar_x\nauto n = "npe_Scalar_x";\n'
        out = emitter.substitute(body, {"npe_Scalar_x": "float"})
        assert out == 'float s; // npe_Scalar_x\nauto n = "npe_Scalar_x";\n'

    def test_partial_identifier_not_replaced(self):
        emitter = SpecializationEmitter()
        out = emitter.substitute("npe_Scalar_xy v;", {"npe_Scalar_x": "float"})
        assert out == "npe_Scalar_xy v;"

    def test_body_otherwise_verbatim(self):
        unit = expand_source(SCALE_SOURCE)
        text = SpecializationEmitter().emit_one(unit, unit.table[0])
        assert "static_cast<float>(factor)" in text
        assert "return npe::move(out);" in text


class TestDispatcherEmitter:
    """Test the runtime entry point emission."""

    def test_branches_in_table_order(self):
        unit = expand_source(FOO_SOURCE)
        text = DispatcherEmitter().emit(unit)
        offsets = [text.index(f"return {ident}(") for ident in unit.table.identifiers]
        assert offsets == sorted(offsets)

    def test_exact_conditions(self):
        unit = expand_source(FOO_SOURCE)
        condition = DispatcherEmitter().condition(unit, unit.table[0])
        assert condition == (
            "npe_tag_a == npe::type_tag::dense_f32 && "
            "npe_tag_b == npe::type_tag::dense_f32 && "
            "npe_tag_c == npe::type_tag::dense_i32 && "
            "npe_tag_f == npe::type_tag::csr_f32"
        )

    def test_opaque_arguments_not_tagged(self):
        text = DispatcherEmitter().emit(expand_source(FOO_SOURCE))
        assert "npe_tag_d" not in text
        assert "std::string d," in text
        assert "pybind11::object a," in text

    def test_fallthrough_raises(self):
        text = DispatcherEmitter().emit(expand_source(FOO_SOURCE))
        assert 'throw npe::type_mismatch_error(\n        "foo",' in text
        assert '{ "a", npe_tag_a }' in text
        assert text.count('{ "dense_f') == 8

    def test_generic_dispatch(self):
        unit = expand_source(NOARG_SOURCE)
        text = DispatcherEmitter().emit(unit)
        assert "if (true)" in text
        assert "return npe_answer__generic();" in text


class TestRegistrationEmitter:
    """Test the per-function and module registration fragments."""

    def test_defaults_and_doc(self):
        text = RegistrationEmitter().emit(expand_source(SCALE_SOURCE))
        assert "void npe_register_scale(pybind11::module_& m)" in text
        assert '"scale",' in text
        assert "&npe_dispatch_scale," in text
        assert 'R"npe_doc(Scale a matrix by a factor.)npe_doc"' in text
        assert 'pybind11::arg("factor") = 2.0' in text
        assert 'pybind11::arg("x"),' in text

    def test_no_arguments(self):
        text = RegistrationEmitter().emit(expand_source(NOARG_SOURCE))
        assert "pybind11::arg" not in text
        assert 'R"npe_doc()npe_doc"\n' in text

    def test_module_fragment(self, config):
        units = [expand_source(FOO_SOURCE), expand_source(SCALE_SOURCE)]
        result = ModuleRegistrationEmitter(config).generate(units, "mymod")
        assert result.path == config.output_dir_abs / "mymod_module.cpp"
        assert "PYBIND11_MODULE(mymod, m)" in result.content
        assert "void npe_register_foo(pybind11::module_& m);" in result.content
        assert "    npe_register_scale(m);" in result.content

    def test_module_name_from_config(self, config):
        result = ModuleRegistrationEmitter(config).generate([])
        assert "PYBIND11_MODULE(npe_module, m)" in result.content


class TestNativeSourceGenerator:
    """Test assembly of the full translation unit."""

    def test_translation_unit(self, config, tmp_path):
        unit = expand_source(SCALE_SOURCE, path=tmp_path / "scale.cpp")
        result = NativeSourceGenerator(config).generate(unit)
        assert result.path == config.output_dir_abs / "scale.npe.cpp"
        text = result.content
        assert text.startswith("// Generated by npegen from scale.cpp.")
        assert "#include <cmath>" in text
        assert text.index("#include <cmath>") < text.index("npe_scale__dense_f32(")
        assert text.index("pybind11::object npe_dispatch_scale(") < text.index(
            "void npe_register_scale("
        )
        assert text.rstrip().endswith("static int helper() { return 1; }")
        assert "npe_function" not in text
        assert "npe_begin_code" not in text

    def test_specialization_count_in_header(self, config):
        result = NativeSourceGenerator(config).generate(expand_source(FOO_SOURCE))
        assert "// 8 specialization(s) of foo." in result.content
        assert result.path.name == "foo.npe.cpp"


class TestStubGenerator:
    """Test Python stub generation."""

    def test_scale_stub(self, config):
        result = StubGenerator(config).generate(expand_source(SCALE_SOURCE))
        text = result.content
        assert result.path.name == "scale.pyi"
        assert "from typing import Any, Union" in text
        assert "x: Union[numpy.ndarray, scipy.sparse.csr_matrix]," in text
        assert "factor: float = ...," in text
        assert "Scale a matrix by a factor." in text
        assert "Accepted combinations (x):" in text
        assert "(csr_f64)" in text

    def test_foo_annotations(self, config):
        stub = StubGenerator(config).build_stub(expand_source(FOO_SOURCE))
        assert stub.params == [
            "a: numpy.ndarray",
            "b: numpy.ndarray",
            "c: numpy.ndarray",
            "d: str",
            "e: int",
            "f: scipy.sparse.csr_matrix",
        ]
        assert len([l for l in stub.doc_lines if l.startswith("    (")]) == 8

    def test_noarg_stub(self, config):
        text = StubGenerator(config).generate(expand_source(NOARG_SOURCE)).content
        assert "def answer(\n) -> Any:" in text
        assert "Union" not in text


class TestManifestGenerator:
    """Test JSON manifest generation."""

    def test_manifest(self, config):
        result = ManifestGenerator(config).generate(expand_source(FOO_SOURCE))
        data = json.loads(result.content)
        assert result.path.name == "foo.npe.json"
        assert data["function"] == "foo"
        assert [a["name"] for a in data["arguments"]] == ["a", "b", "c", "d", "e", "f"]
        assert len(data["combinations"]) == 8
        assert data["dispatch_positions"] == [0, 1, 2, 5]


class TestStringLiterals:
    """Test C++ literal quoting helpers."""

    def test_cpp_string(self):
        assert cpp_string_literal('a"b\\c\n') == '"a\\"b\\\\c\\n"'

    def test_raw_string_delimiter_collision(self):
        text = 'x)npe_doc"y'
        assert cpp_raw_string_literal(text) == 'R"npe_doc1(x)npe_doc"y)npe_doc1"'
