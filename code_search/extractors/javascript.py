"""JavaScript/TypeScript extraction with tree-sitter.

Top-level declarations (functions, classes, interfaces, type aliases, enums,
function-valued constants) become blocks; class methods become blocks nested
inside their class's range. An `export` or `declare` wrapper belongs to the
block it wraps. Imports cover ES modules, re-exports, dynamic `import()` and
CommonJS `require`.

A tree with syntax errors falls back to one whole-file block; its imports and
exports are still read from the recovered tree.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from typing import Literal

import tree_sitter
import tree_sitter_javascript
import tree_sitter_typescript

from code_search.extractors.base import fallback_result, leading_comments, slice_lines
from code_search.schemas.blocks import (
    BlockKind,
    ExtractedBlock,
    ExtractionMetadata,
    ExtractionResult,
    ImportRecord,
)

__all__ = [
    'Dialect',
    'JavaScriptExtractor',
]

logger = logging.getLogger(__name__)

type Dialect = Literal['javascript', 'typescript', 'tsx']

_LANGUAGES: Mapping[Dialect, tree_sitter.Language] = {
    'javascript': tree_sitter.Language(tree_sitter_javascript.language()),
    'typescript': tree_sitter.Language(tree_sitter_typescript.language_typescript()),
    'tsx': tree_sitter.Language(tree_sitter_typescript.language_tsx()),
}

_DECLARATION_KINDS: Mapping[str, BlockKind] = {
    'function_declaration': 'function',
    'generator_function_declaration': 'function',
    'class_declaration': 'class',
    'abstract_class_declaration': 'class',
    'interface_declaration': 'interface',
    'type_alias_declaration': 'type',
    'enum_declaration': 'type',
}
_VARIABLE_DECLARATIONS = frozenset({'lexical_declaration', 'variable_declaration'})
_FUNCTION_VALUES = frozenset({'arrow_function', 'function_expression', 'function', 'generator_function'})
_COMMENT_PREFIXES = ('//', '/*', '*')

# Import source -> framework name
FRAMEWORK_IMPORTS = {
    'next': 'nextjs',
    'react-router': 'react-router',
    'react-router-dom': 'react-router',
    '@remix-run/react': 'remix',
    'vue': 'vue',
    '@angular/core': 'angular',
    'svelte': 'svelte',
    'express': 'express',
    'fastify': 'fastify',
    '@nestjs/core': 'nestjs',
    'react': 'react',
}


class JavaScriptExtractor:
    """Declarations, methods, imports and exports for one JS/TS dialect."""

    def __init__(self, dialect: Dialect = 'javascript') -> None:
        self.dialect = dialect

    def extract(self, content: str, file_path: str) -> ExtractionResult:
        # A parser per call: extraction runs on worker threads
        parser = tree_sitter.Parser(_LANGUAGES[self.dialect])
        root = parser.parse(content.encode()).root_node

        imports = list(_imports(root))
        metadata = ExtractionMetadata(imports=imports, exports=_exports(root), framework=_framework(imports))

        if root.has_error:
            line = _first_error_line(root)
            logger.debug(f'[EXTRACT] {self.dialect} parse errors in {file_path} from line {line}')
            return fallback_result(
                content,
                file_path,
                category='code',
                error=f'SyntaxError: {self.dialect} parse error near line {line}',
                metadata=metadata,
            )

        lines = content.split('\n')
        blocks: list[ExtractedBlock] = []
        for outer, declaration, name, kind in _declarations(root):
            blocks.append(_block(lines, name, kind, outer))
            if kind == 'class':
                blocks.extend(_methods(lines, declaration))

        if not blocks:
            return fallback_result(content, file_path, category='code', metadata=metadata)
        return ExtractionResult(blocks=blocks, metadata=metadata)


def _block(lines: Sequence[str], name: str, kind: BlockKind, node: tree_sitter.Node) -> ExtractedBlock:
    start_line = node.start_point[0] + 1
    end_line = node.end_point[0] + 1
    return ExtractedBlock(
        name=name,
        kind=kind,
        category='code',
        start_line=start_line,
        end_line=end_line,
        content=slice_lines(lines, start_line, end_line),
        comments=leading_comments(lines, start_line, _COMMENT_PREFIXES),
    )


def _declarations(root: tree_sitter.Node) -> Iterator[tuple[tree_sitter.Node, tree_sitter.Node, str, BlockKind]]:
    """(outer node, declaration node, name, kind) per top-level declaration, in source order."""
    for outer in root.named_children:
        declaration = _unwrap(outer)
        if declaration is None:
            continue

        if (kind := _DECLARATION_KINDS.get(declaration.type)) is not None:
            name = declaration.child_by_field_name('name')
            if name is not None:
                yield outer, declaration, _text(name), kind
        elif declaration.type in _VARIABLE_DECLARATIONS:
            declarators = [c for c in declaration.named_children if c.type == 'variable_declarator']
            for declarator in declarators:
                name = declarator.child_by_field_name('name')
                value = declarator.child_by_field_name('value')
                if name is None or value is None or name.type != 'identifier' or value.type not in _FUNCTION_VALUES:
                    continue
                # One declarator owns the whole statement; several get their own ranges
                yield outer if len(declarators) == 1 else declarator, declarator, _text(name), 'function'


def _unwrap(node: tree_sitter.Node) -> tree_sitter.Node | None:
    """The declaration inside `export ...` and `declare ...` wrappers."""
    if node.type == 'export_statement':
        declaration = node.child_by_field_name('declaration')
        if declaration is None:
            return None
        node = declaration
    if node.type == 'ambient_declaration':
        return next((c for c in node.named_children if c.type != 'comment'), None)
    return node


def _methods(lines: Sequence[str], class_node: tree_sitter.Node) -> Iterator[ExtractedBlock]:
    body = class_node.child_by_field_name('body')
    if body is None:
        return
    for member in body.named_children:
        if member.type != 'method_definition':
            continue
        name = member.child_by_field_name('name')
        if name is not None:
            yield _block(lines, _text(name), 'method', member)


# --- Imports and exports ---


def _imports(root: tree_sitter.Node) -> Iterator[ImportRecord]:
    for node in _walk(root):
        match node.type:
            case 'import_statement':
                source = node.child_by_field_name('source')
                if source is not None:
                    yield ImportRecord(source=_string_value(source), symbols=_import_clause_symbols(node))
            case 'export_statement':
                # Re-exports: `export { a } from './x'`, `export * from './x'`
                source = node.child_by_field_name('source')
                if source is not None:
                    yield ImportRecord(source=_string_value(source), symbols=_reexported_names(node))
            case 'call_expression':
                if (source := _call_source(node)) is not None:
                    yield ImportRecord(source=source, symbols=_require_binding(node))


def _import_clause_symbols(statement: tree_sitter.Node) -> Sequence[str]:
    """Local names bound by an import: default, namespace and named specifiers in source order."""
    clause = next((c for c in statement.named_children if c.type == 'import_clause'), None)
    if clause is None:
        return []
    symbols: list[str] = []
    for part in clause.named_children:
        match part.type:
            case 'identifier':
                symbols.append(_text(part))
            case 'namespace_import':
                local = next((c for c in part.named_children if c.type == 'identifier'), None)
                if local is not None:
                    symbols.append(_text(local))
            case 'named_imports':
                for specifier in part.named_children:
                    if specifier.type == 'import_specifier':
                        local = specifier.child_by_field_name('alias') or specifier.child_by_field_name('name')
                        if local is not None:
                            symbols.append(_text(local))
    return symbols


def _reexported_names(statement: tree_sitter.Node) -> Sequence[str]:
    """Names taken from the source module by a re-export."""
    clause = next((c for c in statement.named_children if c.type == 'export_clause'), None)
    if clause is None:
        return []
    return [
        _text(name)
        for specifier in clause.named_children
        if specifier.type == 'export_specifier' and (name := specifier.child_by_field_name('name')) is not None
    ]


def _call_source(call: tree_sitter.Node) -> str | None:
    """Module of `require('x')` or `import('x')` with a literal argument."""
    function = call.child_by_field_name('function')
    if function is None or not (
        function.type == 'import' or (function.type == 'identifier' and _text(function) == 'require')
    ):
        return None
    arguments = call.child_by_field_name('arguments')
    first = arguments.named_children[0] if arguments is not None and arguments.named_children else None
    if first is None or first.type != 'string':
        return None
    return _string_value(first)


def _require_binding(call: tree_sitter.Node) -> Sequence[str]:
    """Names bound by `const x = require(...)` or `const { a, b: c } = require(...)`."""
    declarator = call.parent
    if declarator is None or declarator.type != 'variable_declarator':
        return []
    target = declarator.child_by_field_name('name')
    if target is None:
        return []
    if target.type == 'identifier':
        return [_text(target)]
    names: list[str] = []
    for prop in target.named_children:
        match prop.type:
            case 'shorthand_property_identifier_pattern':
                names.append(_text(prop))
            case 'pair_pattern':
                value = prop.child_by_field_name('value')
                if value is not None and value.type == 'identifier':
                    names.append(_text(value))
    return names


def _exports(root: tree_sitter.Node) -> Sequence[str]:
    names: list[str] = []
    for statement in root.named_children:
        if statement.type != 'export_statement':
            continue
        declaration = _unwrap(statement)
        if declaration is not None:
            if declaration.type in _VARIABLE_DECLARATIONS:
                for declarator in declaration.named_children:
                    name = declarator.child_by_field_name('name') if declarator.type == 'variable_declarator' else None
                    if name is not None and name.type == 'identifier':
                        names.append(_text(name))
            elif (name := declaration.child_by_field_name('name')) is not None:
                names.append(_text(name))
            continue

        clause = next((c for c in statement.named_children if c.type == 'export_clause'), None)
        for specifier in clause.named_children if clause is not None else ():
            if specifier.type == 'export_specifier':
                exported = specifier.child_by_field_name('alias') or specifier.child_by_field_name('name')
                if exported is not None:
                    names.append(_text(exported))
    return list(dict.fromkeys(names))


def _framework(imports: Sequence[ImportRecord]) -> str | None:
    sources = {record.source for record in imports}
    for source, framework in FRAMEWORK_IMPORTS.items():
        if source in sources:
            return framework
    return None


# --- Tree helpers ---


def _walk(root: tree_sitter.Node) -> Iterator[tree_sitter.Node]:
    """Pre-order traversal without recursion; minified bundles nest deeply."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def _first_error_line(root: tree_sitter.Node) -> int:
    for node in _walk(root):
        if node.type == 'ERROR' or node.is_missing:
            return node.start_point[0] + 1
    return 1


def _text(node: tree_sitter.Node) -> str:
    return node.text.decode() if node.text is not None else ''


def _string_value(node: tree_sitter.Node) -> str:
    return _text(node).strip('\'"`')
