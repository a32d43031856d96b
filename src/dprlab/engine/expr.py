from __future__ import annotations
from typing import Any, Dict, Mapping, Optional, Set
from functools import lru_cache
import math

from py_expression_eval import Parser

# Variables a goal expression may reference; filled from LevelMetrics
METRIC_VARIABLES: Set[str] = {
    "dpr", "dpr_with_spells", "survival", "utility", "slots", "level",
    "extra_attack", "haste", "power_attack",
}

ALLOWED_FUNCTIONS: Set[str] = {"min", "max", "floor", "ceil"}

_parser = Parser()

# Allowed math helpers
_parser.functions["min"] = min
_parser.functions["max"] = max
_parser.functions["floor"] = math.floor
_parser.functions["ceil"] = math.ceil

# LRU-compiled AST cache
@lru_cache(maxsize=1024)
def _compile_expr(expr: str):
    return _parser.parse(expr)

def unknown_variables(expr: str) -> Set[str]:
    """Names the expression uses that are neither metrics nor helper functions."""
    used = set(_compile_expr(expr).variables())
    return used - METRIC_VARIABLES - ALLOWED_FUNCTIONS

def eval_expr(expr: str | int | float, variables: Optional[Mapping[str, Any]] = None) -> int | float:
    """
    Evaluate an expression string (or numeric literal) against a variable table.
    Parse errors and unknown variables propagate to the caller.
    """
    if isinstance(expr, (int, float)):
        return expr
    ast = _compile_expr(expr)
    value = ast.evaluate(dict(variables or {}))
    f = float(value)
    return int(f) if f.is_integer() else f

def expr_cache_info() -> str:
    info = _compile_expr.cache_info()
    return f"expr-cache: hits={info.hits}, misses={info.misses}, size={info.currsize}/{info.maxsize}"
