"""Tool-code parse trees and the call interpreter."""

from .ast_nodes import ASTNode, Token
from .call_parser import ArgumentValue, CallDescriptor, decode_value, parse_call
from .python_parser import PythonCallParser

__all__ = [
    "ASTNode",
    "ArgumentValue",
    "CallDescriptor",
    "PythonCallParser",
    "Token",
    "decode_value",
    "parse_call",
]
