"""Supabase 函数打包器。

把函数入口及其相对/绝对导入的本地模块合并为单个 ES module 文本：

1. 解析入口文件（supabase/functions/<name>/index.ts）
2. 对遇到的每个导入说明符调用解析钩子（imports.classify）
3. INLINE 说明符解析为文件并递归内联；EXTERNAL 说明符原样保留并提升到顶部
4. 依赖模块按叶子优先的顺序输出，每个依赖包装为一个命名空间对象
5. 入口模块的导出保持为顶层模块导出

这里只做语句级别的改写，不做类型擦除；输出仍是 TypeScript/JavaScript 源码，
由目标运行时（Deno）负责执行。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from edgefn.errors import (
    BundleProducedNoOutput,
    CircularImport,
    EntryPointMissing,
    UnresolvedImport,
)

from .imports import ImportKind, classify, normalize_specifier
from .layout import FunctionDescriptor, get_functions_root

logger = logging.getLogger(__name__)

RESOLVE_EXTENSIONS = (".ts", ".tsx", ".js", ".mjs", ".jsx")

_MODULE_VAR_PREFIX = "__edgefn_mod_"
_EXTERNAL_VAR_PREFIX = "__edgefn_ext_"
_DEFAULT_LOCAL = "__default"

# import <clause> from "<specifier>"
_IMPORT_FROM = re.compile(
    r"^[ \t]*import[ \t]+(?P<type>type[ \t]+)?(?P<clause>[\w$*{}\s,]+?)\s*\bfrom\s*"
    r"(?P<q>['\"])(?P<spec>[^'\"\n]+)(?P=q)[ \t]*;?",
    re.MULTILINE,
)
# import "<specifier>"
_IMPORT_BARE = re.compile(
    r"^[ \t]*import[ \t]*(?P<q>['\"])(?P<spec>[^'\"\n]+)(?P=q)[ \t]*;?",
    re.MULTILINE,
)
# export { ... } from "<specifier>" / export * [as ns] from "<specifier>"
_REEXPORT = re.compile(
    r"^[ \t]*export[ \t]+(?P<type>type[ \t]+)?(?P<clause>\*(?:\s+as\s+[\w$]+)?|\{[^}]*\})\s*from\s*"
    r"(?P<q>['\"])(?P<spec>[^'\"\n]+)(?P=q)[ \t]*;?",
    re.MULTILINE,
)
# export { a, b as c };
_EXPORT_LIST = re.compile(
    r"^[ \t]*export[ \t]+(?P<type>type[ \t]+)?\{(?P<names>[^}]*)\}(?![ \t]*from)[ \t]*;?",
    re.MULTILINE,
)
# export <declaration>
_EXPORT_DECL = re.compile(r"^(?P<indent>[ \t]*)export[ \t]+(?P<rest>(?!\{|\*).*)$", re.MULTILINE)

_NAMED_FUNCTION = re.compile(r"^(?:async\s+)?function\s*\*?\s*(?P<name>[\w$]+)\s*[<(]")
_NAMED_CLASS = re.compile(r"^(?:abstract\s+)?class\s+(?!extends\b)(?P<name>[\w$]+)")
_ENUM = re.compile(r"^(?:const\s+)?enum\s+(?P<name>[\w$]+)")
_DECLARATION_KEYWORD = re.compile(r"^(?:const|let|var)\s+")
_DECLARATOR_START = re.compile(r"^\s*(?:[\w$]+\s*(?:[=:!]|$)|[{\[])")
# import("<specifier>")
_DYNAMIC_IMPORT = re.compile(r"(?<![\w$.])import\s*\(\s*(?P<q>['\"])(?P<spec>[^'\"\n]+)(?P=q)\s*\)")
_AWAIT = re.compile(r"\bawait\b")
_TYPE_ONLY = re.compile(r"^(?:declare\s+|interface\s+|type\s+[\w$]+)")
_AS = re.compile(r"\s+as\s+")


@dataclass(frozen=True)
class BundleResult:
    """一次打包的结果：单个自包含 ES module 文本。"""

    source_text: str


@dataclass(frozen=True)
class ResolvedImport:
    """解析钩子对一个导入说明符的决定。"""

    specifier: str
    kind: ImportKind
    path: Path | None = None


@dataclass
class ImportClause:
    """import 子句拆分结果。"""

    default: str | None = None
    namespace: str | None = None
    named: list[tuple[str, str]] = field(default_factory=list)  # (imported, local)


@dataclass
class ModuleRecord:
    """已内联模块的信息。"""

    path: Path
    var_name: str
    body: str = ""
    exports: dict[str, str] = field(default_factory=dict)  # 导出名 -> 表达式
    star_externals: list[str] = field(default_factory=list)  # export * from "<external>"


def parse_import_clause(clause: str) -> ImportClause:
    """拆分 import 子句：default、* as ns、{ a, b as c }。

    内联的 `type X` 成员没有运行时值，直接忽略。
    """
    result = ImportClause()
    rest = " ".join(clause.split())

    if rest and not rest.startswith(("{", "*")):
        head, _, rest = rest.partition(",")
        result.default = head.strip() or None
        rest = rest.strip()

    if rest.startswith("*"):
        match = re.match(r"\*\s*as\s+([\w$]+)", rest)
        if match:
            result.namespace = match.group(1)
    elif rest.startswith("{"):
        inner = rest[1 : rest.rfind("}")] if "}" in rest else rest[1:]
        result.named = _parse_named_list(inner)

    return result


def _parse_named_list(inner: str) -> list[tuple[str, str]]:
    named: list[tuple[str, str]] = []
    for part in inner.split(","):
        part = part.strip()
        if not part or part.startswith("type "):
            continue
        pieces = _AS.split(part, maxsplit=1)
        imported = pieces[0].strip()
        local = pieces[1].strip() if len(pieces) > 1 else imported
        named.append((imported, local))
    return named


def _binding_names(pattern: str) -> list[str]:
    """提取简单解构模式 { a, b: c } / [a, b] 中绑定的名字。"""
    inner = pattern.strip()[1:-1]
    names: list[str] = []
    for part in inner.split(","):
        part = part.strip()
        if not part:
            continue
        part = part.split("=", 1)[0].strip()
        if ":" in part:
            part = part.split(":", 1)[1].strip()
        part = part.lstrip(".")
        if re.fullmatch(r"[\w$]+", part):
            names.append(part)
    return names


def _skip_string(text: str, start: int) -> int:
    quote = text[start]
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n" and quote != "`":
            return i
        i += 1
    return len(text)


def _iter_top_level(text: str) -> Iterator[tuple[int, str, int]]:
    """逐字符遍历代码，跳过字符串、模板字面量与注释。

    产出 (位置, 字符, 括号深度)；深度为 0 表示不在任何 () [] {} 内。
    """
    depth = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if ch in "'\"`":
            i = _skip_string(text, i)
            continue
        if text.startswith("//", i):
            end = text.find("\n", i)
            i = len(text) if end == -1 else end
            continue
        if text.startswith("/*", i):
            end = text.find("*/", i + 2)
            i = len(text) if end == -1 else end + 2
            continue
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        yield i, ch, depth
        i += 1


def _statement_text(text: str, start: int) -> str:
    """从 start 开始截取一条语句，跨行的初始化表达式也包含在内。"""
    tail = text[start:]
    for i, ch, depth in _iter_top_level(tail):
        if depth != 0:
            continue
        if ch == ";":
            return tail[:i]
        if ch == "\n":
            before = tail[:i].rstrip()
            after = tail[i:].lstrip()
            if before.endswith((",", "=", "=>", "(", "?", ":", "+", "-", "*", "|", "&")):
                continue
            if after.startswith((",", ".", "?", ":", "+", "-", "*", "|", "&", "=")):
                continue
            return tail[:i]
    return tail


def _split_top_level(text: str, separator: str) -> list[str]:
    parts: list[str] = []
    last = 0
    for i, ch, depth in _iter_top_level(text):
        if depth == 0 and ch == separator:
            parts.append(text[last:i])
            last = i + 1
    parts.append(text[last:])
    return parts


def _declarator_names(statement: str) -> list[str]:
    """提取 const/let/var 语句中每个声明符绑定的名字。

    例如 `const A = 1, { b, c: d } = obj` -> ["A", "b", "d"]。
    泛型参数中的逗号（Map<string, number>）不会被当成声明符分隔。
    """
    body = _DECLARATION_KEYWORD.sub("", statement.strip(), count=1)
    declarators: list[str] = []
    for piece in _split_top_level(body, ","):
        if declarators and not _DECLARATOR_START.match(piece):
            declarators[-1] += "," + piece
        else:
            declarators.append(piece)

    names: list[str] = []
    for declarator in declarators:
        target = declarator.strip()
        if target.startswith(("{", "[")):
            closing = next(
                (i for i, ch, depth in _iter_top_level(target) if depth == 0 and ch in "}]"),
                len(target) - 1,
            )
            names.extend(_binding_names(target[: closing + 1]))
            continue
        match = re.match(r"[\w$]+", target)
        if match:
            names.append(match.group(0))
    return names


class Bundler:
    """把一个函数打包为单个 ES module。"""

    def __init__(self, app_path: Path, function_name: str) -> None:
        self.descriptor = FunctionDescriptor(function_name=function_name, app_path=Path(app_path))
        self._modules: dict[Path, ModuleRecord] = {}
        self._order: list[ModuleRecord] = []
        self._external_imports: list[str] = []
        self._external_seen: set[str] = set()
        self._external_counter = 0

    # ------------------------------------------------------------------
    # 解析钩子
    # ------------------------------------------------------------------

    def resolve_import(self, specifier: str, importer: Path) -> ResolvedImport:
        """对每个导入说明符先咨询分类器，再决定是否交给文件解析。"""
        kind = classify(specifier)
        if kind is ImportKind.EXTERNAL:
            return ResolvedImport(specifier=specifier, kind=kind)
        return ResolvedImport(specifier=specifier, kind=kind, path=self._resolve_path(specifier, importer))

    def _resolve_path(self, specifier: str, importer: Path) -> Path:
        normalized = normalize_specifier(specifier)
        if normalized.startswith("."):
            base = importer.parent / normalized
        else:
            base = Path(normalized)

        candidates = [base]
        candidates.extend(base.with_name(base.name + ext) for ext in RESOLVE_EXTENSIONS)
        candidates.extend(base / f"index{ext}" for ext in RESOLVE_EXTENSIONS)
        for candidate in candidates:
            if candidate.is_file():
                return candidate.resolve()

        raise UnresolvedImport(f'无法解析导入 "{specifier}"（来自 {importer}）')

    # ------------------------------------------------------------------
    # 打包
    # ------------------------------------------------------------------

    def bundle(self) -> BundleResult:
        """执行打包。

        Returns:
            BundleResult

        Raises:
            EntryPointMissing: 入口文件不存在（在任何构建步骤之前）
            UnresolvedImport: 本地导入无法解析
            CircularImport: 本地导入存在环
            BundleProducedNoOutput: 构建没有产生输出
        """
        entry = self.descriptor.find_entry_point()
        if entry is None:
            raise EntryPointMissing(
                f'Supabase 函数 "{self.descriptor.function_name}" 必须包含 index.ts 入口文件。'
                f"期望路径：{self.descriptor.expected_entry_point}"
            )

        entry = entry.resolve()
        logger.debug("Bundling %s from %s", self.descriptor.function_name, entry)
        entry_source = entry.read_text(encoding="utf-8")
        self._visit_dependencies(entry, entry_source, stack=[entry])
        entry_body = self._transform(entry, entry_source, is_entry=True, record=None)

        output = self._assemble(entry_body)
        if not output.strip():
            raise BundleProducedNoOutput(
                f'打包 Supabase 函数 "{self.descriptor.function_name}" 失败：没有生成任何输出。'
            )
        return BundleResult(source_text=output)

    def _scan_specifiers(self, source: str) -> list[str]:
        specifiers: list[str] = []
        for pattern in (_IMPORT_FROM, _IMPORT_BARE, _REEXPORT, _DYNAMIC_IMPORT):
            for match in pattern.finditer(source):
                specifiers.append(match.group("spec"))
        return specifiers

    def _visit_dependencies(self, path: Path, source: str, stack: list[Path]) -> None:
        for specifier in self._scan_specifiers(source):
            resolved = self.resolve_import(specifier, path)
            if resolved.kind is ImportKind.EXTERNAL or resolved.path is None:
                continue
            self._visit(resolved.path, stack)

    def _visit(self, path: Path, stack: list[Path]) -> ModuleRecord:
        if path in self._modules:
            return self._modules[path]
        if path in stack:
            cycle = " -> ".join(self._display_path(p) for p in [*stack[stack.index(path):], path])
            raise CircularImport(f"检测到循环导入：{cycle}")

        source = path.read_text(encoding="utf-8")
        self._visit_dependencies(path, source, stack=[*stack, path])

        record = ModuleRecord(path=path, var_name=f"{_MODULE_VAR_PREFIX}{len(self._order)}")
        record.body = self._transform(path, source, is_entry=False, record=record)
        self._modules[path] = record
        self._order.append(record)
        return record

    # ------------------------------------------------------------------
    # 语句改写
    # ------------------------------------------------------------------

    def _transform(self, path: Path, source: str, *, is_entry: bool, record: ModuleRecord | None) -> str:
        text = source

        def _target(specifier: str) -> ModuleRecord | None:
            resolved = self.resolve_import(specifier, path)
            if resolved.kind is ImportKind.EXTERNAL or resolved.path is None:
                return None
            return self._modules[resolved.path]

        def _replace_import(match: re.Match[str]) -> str:
            target = _target(match.group("spec"))
            if target is None:
                self._hoist_external(match.group(0))
                return ""
            if match.group("type"):
                return ""
            return self._render_import_binding(parse_import_clause(match.group("clause")), target.var_name)

        def _replace_bare_import(match: re.Match[str]) -> str:
            if _target(match.group("spec")) is None:
                self._hoist_external(match.group(0))
            return ""

        def _replace_reexport(match: re.Match[str]) -> str:
            if match.group("type"):
                return "" if _target(match.group("spec")) is not None or not is_entry else match.group(0)
            target = _target(match.group("spec"))
            clause = match.group("clause").strip()
            if target is None:
                if is_entry:
                    return match.group(0)
                return self._reexport_external(clause, match.group("spec"), record)
            pairs = self._reexport_pairs(clause, target)
            star = clause == "*"
            if is_entry:
                if star:
                    # 依赖里的 export * from "<external>" 在顶层重新导出
                    for specifier in target.star_externals:
                        self._hoist_external(f'export * from "{specifier}";')
                return self._render_entry_reexport(pairs)
            assert record is not None
            for exported, expression in pairs:
                record.exports[exported] = expression
            if star:
                for name in target.exports:
                    if name.startswith("..."):
                        record.exports[name] = ""
                record.star_externals.extend(target.star_externals)
            return ""

        def _replace_dynamic_import(match: re.Match[str]) -> str:
            target = _target(match.group("spec"))
            if target is None:
                return match.group(0)
            return f"Promise.resolve({target.var_name})"

        text = _IMPORT_FROM.sub(_replace_import, text)
        text = _IMPORT_BARE.sub(_replace_bare_import, text)
        text = _REEXPORT.sub(_replace_reexport, text)
        text = _DYNAMIC_IMPORT.sub(_replace_dynamic_import, text)

        if is_entry:
            return text.strip("\n")

        assert record is not None

        def _replace_export_list(match: re.Match[str]) -> str:
            if match.group("type"):
                return ""
            for local, exported in _parse_named_list(match.group("names")):
                record.exports[exported] = local
            return ""

        def _replace_declaration(match: re.Match[str]) -> str:
            statement = _statement_text(match.string, match.start("rest"))
            return match.group("indent") + self._strip_export(match.group("rest"), record, statement)

        text = _EXPORT_LIST.sub(_replace_export_list, text)
        text = _EXPORT_DECL.sub(_replace_declaration, text)
        return text.strip("\n")

    def _strip_export(self, rest: str, record: ModuleRecord, statement: str) -> str:
        """去掉 export 关键字并登记导出名。

        statement 是从声明开头截取的完整语句（可能跨行），
        用于找出多声明符语句中的全部名字。
        """
        if rest.startswith("default") and (len(rest) == 7 or not re.match(r"[\w$]", rest[7])):
            after = rest[7:].lstrip()
            named = _NAMED_FUNCTION.match(after) or _NAMED_CLASS.match(after)
            if named:
                record.exports["default"] = named.group("name")
                return after
            record.exports["default"] = _DEFAULT_LOCAL
            return f"const {_DEFAULT_LOCAL} = {after}"

        if _TYPE_ONLY.match(rest):
            return rest

        for pattern in (_NAMED_FUNCTION, _NAMED_CLASS, _ENUM):
            match = pattern.match(rest)
            if match:
                record.exports[match.group("name")] = match.group("name")
                return rest

        if _DECLARATION_KEYWORD.match(rest):
            for name in _declarator_names(statement):
                record.exports[name] = name
        return rest

    def _render_import_binding(self, clause: ImportClause, var_name: str) -> str:
        statements: list[str] = []
        members: list[str] = []
        if clause.default:
            members.append(f"default: {clause.default}")
        for imported, local in clause.named:
            members.append(imported if imported == local else f"{imported}: {local}")
        if members:
            statements.append(f"const {{ {', '.join(members)} }} = {var_name};")
        if clause.namespace:
            statements.append(f"const {clause.namespace} = {var_name};")
        return "\n".join(statements)

    def _reexport_pairs(self, clause: str, target: ModuleRecord) -> list[tuple[str, str]]:
        """把再导出子句展开为 (导出名, 表达式) 列表。"""
        if clause.startswith("*"):
            match = re.match(r"\*\s+as\s+([\w$]+)", clause)
            if match:
                return [(match.group(1), target.var_name)]
            return [
                (name, f"{target.var_name}.{name}")
                for name in target.exports
                if name != "default" and not name.startswith("...")
            ]
        return [
            (exported, f"{target.var_name}.{imported}")
            for imported, exported in _parse_named_list(clause.strip()[1:-1])
        ]

    def _render_entry_reexport(self, pairs: list[tuple[str, str]]) -> str:
        lines = []
        for exported, expression in pairs:
            if exported == "default":
                lines.append(f"export default {expression};")
            else:
                lines.append(f"export const {exported} = {expression};")
        return "\n".join(lines)

    def _reexport_external(self, clause: str, specifier: str, record: ModuleRecord | None) -> str:
        """依赖模块中的外部再导出：提升为命名空间导入并挂到导出表上。"""
        assert record is not None
        alias = f"{_EXTERNAL_VAR_PREFIX}{self._external_counter}"
        self._external_counter += 1
        self._hoist_external(f'import * as {alias} from "{specifier}";')
        if clause.startswith("*"):
            match = re.match(r"\*\s+as\s+([\w$]+)", clause)
            if match:
                record.exports[match.group(1)] = alias
            else:
                record.exports[f"...{alias}"] = ""
                record.star_externals.append(specifier)
            return ""
        for imported, exported in _parse_named_list(clause[1:-1]):
            record.exports[exported] = f"{alias}.{imported}"
        return ""

    def _hoist_external(self, statement: str) -> None:
        normalized = " ".join(statement.split())
        if not normalized.endswith(";"):
            normalized += ";"
        if normalized in self._external_seen:
            return
        self._external_seen.add(normalized)
        self._external_imports.append(normalized)

    # ------------------------------------------------------------------
    # 输出
    # ------------------------------------------------------------------

    def _display_path(self, path: Path) -> str:
        root = get_functions_root(self.descriptor.app_path).resolve()
        try:
            return path.relative_to(root).as_posix()
        except ValueError:
            return path.name

    def _render_module(self, record: ModuleRecord) -> str:
        members = []
        for name, expression in record.exports.items():
            if name.startswith("..."):
                members.append(name)
            elif name == expression:
                members.append(name)
            else:
                members.append(f"{name}: {expression}")
        # 含 await 的模块体用 async 包装，由输出模块的顶层 await 求值
        wrapper = "await (async () => {" if _AWAIT.search(record.body) else "(() => {"
        parts = [
            f"// {self._display_path(record.path)}",
            f"const {record.var_name} = {wrapper}",
        ]
        if record.body:
            parts.append(record.body)
        parts.append(f"return {{ {', '.join(members)} }};" if members else "return {};")
        parts.append("})();")
        return "\n".join(parts)

    def _assemble(self, entry_body: str) -> str:
        sections: list[str] = []
        if self._external_imports:
            sections.append("\n".join(self._external_imports))
        sections.extend(self._render_module(record) for record in self._order)
        if entry_body.strip():
            sections.append(entry_body)
        if not sections:
            return ""
        return "\n\n".join(sections) + "\n"


def bundle_function(app_path: Path, function_name: str) -> BundleResult:
    """打包 <app_path>/supabase/functions/<function_name> 为单个 ES module。"""
    return Bundler(app_path, function_name).bundle()
