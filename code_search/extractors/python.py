"""Python extraction via the standard library `ast` module.

Top-level functions and classes become blocks, methods become blocks nested
inside their class's range. Decorators belong to the block they decorate.
"""

from __future__ import annotations

import ast
import logging
from collections.abc import Iterator, Sequence

from code_search.extractors.base import fallback_result, leading_comments, slice_lines
from code_search.schemas.blocks import (
    BlockKind,
    ExtractedBlock,
    ExtractionMetadata,
    ExtractionResult,
    ImportRecord,
)

__all__ = [
    'PythonExtractor',
]

logger = logging.getLogger(__name__)

# Top-level import root -> framework name
FRAMEWORK_IMPORTS = {
    'django': 'django',
    'fastapi': 'fastapi',
    'flask': 'flask',
    'mcp': 'mcp',
    'starlette': 'starlette',
}

type _Definition = ast.FunctionDef | ast.AsyncFunctionDef | ast.ClassDef


class PythonExtractor:
    """Functions, classes, methods, imports and `__all__` exports."""

    def extract(self, content: str, file_path: str) -> ExtractionResult:
        try:
            tree = ast.parse(content, filename=file_path)
        except (SyntaxError, ValueError) as e:
            logger.debug(f'[EXTRACT] Python parse failed for {file_path}: {e}')
            return fallback_result(content, file_path, category='code', error=f'{type(e).__name__}: {e}')

        lines = content.splitlines()
        imports = list(_imports(tree))
        metadata = ExtractionMetadata(imports=imports, exports=_exports(tree), framework=_framework(imports))

        blocks = [self._block(node, kind, lines) for node, kind in _definitions(tree.body, in_class=False)]
        if not blocks:
            return fallback_result(content, file_path, category='code', metadata=metadata)
        return ExtractionResult(blocks=blocks, metadata=metadata)

    def _block(self, node: _Definition, kind: BlockKind, lines: Sequence[str]) -> ExtractedBlock:
        start_line = min([node.lineno, *(d.lineno for d in node.decorator_list)])
        end_line = node.end_lineno or node.lineno

        comments = leading_comments(lines, start_line, ('#',))
        docstring = ast.get_docstring(node)
        if docstring:
            comments = f'{comments}\n{docstring}' if comments else docstring

        return ExtractedBlock(
            name=node.name,
            kind=kind,
            category='code',
            start_line=start_line,
            end_line=end_line,
            content=slice_lines(lines, start_line, end_line),
            comments=comments,
        )


def _definitions(body: Sequence[ast.stmt], *, in_class: bool) -> Iterator[tuple[_Definition, BlockKind]]:
    for node in body:
        match node:
            case ast.ClassDef():
                yield node, 'class'
                yield from _definitions(node.body, in_class=True)
            case ast.FunctionDef() | ast.AsyncFunctionDef():
                yield node, 'method' if in_class else 'function'


def _imports(tree: ast.Module) -> Iterator[ImportRecord]:
    for node in ast.walk(tree):
        match node:
            case ast.Import():
                for alias in node.names:
                    yield ImportRecord(source=alias.name)
            case ast.ImportFrom():
                source = '.' * node.level + (node.module or '')
                symbols = [alias.asname or alias.name for alias in node.names if alias.name != '*']
                yield ImportRecord(source=source, symbols=symbols)


def _exports(tree: ast.Module) -> Sequence[str]:
    """Names in a literal `__all__`, else public top-level functions and classes."""
    for node in tree.body:
        if isinstance(node, ast.Assign) and any(
            isinstance(target, ast.Name) and target.id == '__all__' for target in node.targets
        ):
            if isinstance(node.value, (ast.List, ast.Tuple)):
                return [
                    elt.value
                    for elt in node.value.elts
                    if isinstance(elt, ast.Constant) and isinstance(elt.value, str)
                ]
    return [
        node.name
        for node in tree.body
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)) and not node.name.startswith('_')
    ]


def _framework(imports: Sequence[ImportRecord]) -> str | None:
    for record in imports:
        root = record.source.lstrip('.').split('.', 1)[0]
        if root in FRAMEWORK_IMPORTS:
            return FRAMEWORK_IMPORTS[root]
    return None
