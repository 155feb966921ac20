"""
Concrete type to C++ / Python expression mapper.

Maps each ConcreteType to the spellings the emitters need: the formal
parameter type of a specialization, the Eigen types bound to the body's
``npe_Matrix_<arg>`` / ``npe_Scalar_<arg>`` / ``npe_Map_<arg>`` aliases, the
``npe::type_tag`` enumerator tested by the dispatcher, and the type used in
Python stubs.
"""

from __future__ import annotations

from dataclasses import dataclass

from .registry import ConcreteType, ElementType, SparseLayout, TypeKind


CPP_SCALAR_MAP = {
    ElementType.float32: "float",
    ElementType.float64: "double",
    ElementType.int32: "std::int32_t",
    ElementType.int64: "std::int64_t",
}

EIGEN_LAYOUT_MAP = {
    SparseLayout.CSR: "Eigen::RowMajor",
    SparseLayout.CSC: "Eigen::ColMajor",
}

# Python annotations for common opaque host types
PYI_OPAQUE_MAP = {
    "std::string": "str",
    "const std::string&": "str",
    "const std::string &": "str",
    "bool": "bool",
    "int": "int",
    "long": "int",
    "std::int32_t": "int",
    "std::int64_t": "int",
    "size_t": "int",
    "std::size_t": "int",
    "float": "float",
    "double": "float",
}


@dataclass(frozen=True)
class ArgumentBinding:
    """C++ spellings bound to one argument under one combination."""
    param_type: str
    scalar_type: str
    matrix_type: str
    map_type: str


class CppTypeMapper:
    """
    Maps concrete types to C++ expression strings.

    Dense arguments are received as ``npe::dense_view<Scalar>`` and sparse
    arguments as ``npe::sparse_view<Scalar, Layout>``; both alias the
    caller's buffers. Opaque arguments keep their declared host type.
    """

    def scalar_type(self, ctype: ConcreteType) -> str:
        if ctype.kind is TypeKind.OPAQUE:
            return ctype.host_type
        return CPP_SCALAR_MAP[ctype.element]

    def param_type(self, ctype: ConcreteType) -> str:
        """Formal parameter type of a specialization."""
        if ctype.kind is TypeKind.DENSE:
            return f"npe::dense_view<{CPP_SCALAR_MAP[ctype.element]}>"
        if ctype.kind is TypeKind.SPARSE:
            return (
                f"npe::sparse_view<{CPP_SCALAR_MAP[ctype.element]}, "
                f"{EIGEN_LAYOUT_MAP[ctype.layout]}>"
            )
        return ctype.host_type

    def matrix_type(self, ctype: ConcreteType) -> str:
        """Owning Eigen type with the same scalar and storage."""
        scalar = self.scalar_type(ctype)
        if ctype.kind is TypeKind.DENSE:
            return f"Eigen::Matrix<{scalar}, Eigen::Dynamic, Eigen::Dynamic, Eigen::RowMajor>"
        if ctype.kind is TypeKind.SPARSE:
            return f"Eigen::SparseMatrix<{scalar}, {EIGEN_LAYOUT_MAP[ctype.layout]}>"
        return ctype.host_type

    def map_type(self, ctype: ConcreteType) -> str:
        """Non-owning view type (same as the parameter type)."""
        return self.param_type(ctype)

    def type_tag(self, ctype: ConcreteType) -> str:
        """``npe::type_tag`` enumerator tested by the dispatcher."""
        if ctype.kind is TypeKind.OPAQUE:
            raise ValueError(f"Opaque type {ctype.host_type} has no runtime tag")
        return f"npe::type_tag::{ctype.tag}"

    def bind(self, ctype: ConcreteType) -> ArgumentBinding:
        return ArgumentBinding(
            param_type=self.param_type(ctype),
            scalar_type=self.scalar_type(ctype),
            matrix_type=self.matrix_type(ctype),
            map_type=self.map_type(ctype),
        )

    def pyi_type(self, ctype: ConcreteType) -> str:
        """Python annotation used in generated stubs."""
        if ctype.kind is TypeKind.DENSE:
            return "numpy.ndarray"
        if ctype.kind is TypeKind.SPARSE:
            return f"scipy.sparse.{ctype.layout.value}_matrix"
        return PYI_OPAQUE_MAP.get(ctype.host_type, "Any")
