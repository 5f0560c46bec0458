"""Statement loading from SQL files and mapper XML.

SQL files use aiosql-style named statements. Directive comments directly
after ``-- name:`` describe the statement; ``-- namespace:`` applies to every
statement that follows it in the file::

    -- namespace: app.mappers.UserMapper

    -- name: select_by_id
    -- result: app.models.User
    SELECT id, user_name FROM user WHERE id = #{id}

    -- name: insert_user
    -- parameter: app.models.User
    INSERT INTO user (id, user_name) VALUES (#{id}, #{user_name})

When no ``-- command:`` directive is given, the command kind is inferred by
parsing the statement with sqlglot.
"""

import hashlib
import re
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from difflib import get_close_matches
from pathlib import Path
from typing import Any, Final, Optional, Union

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

from sqlbatis.core.statement import CommandKind, StatementDescriptor, StatementRegistry
from sqlbatis.exceptions import ConfigurationError, SQLFileNotFoundError, SQLFileParseError
from sqlbatis.utils.logging import get_correlation_id, get_logger
from sqlbatis.utils.module_loader import import_string

__all__ = (
    "TYPE_ALIASES",
    "NamedStatement",
    "SQLFile",
    "SQLFileLoader",
    "infer_command_kind",
    "resolve_type_name",
)

logger = get_logger("loader")

# Matches: -- name: statement_name (supports hyphens and aiosql suffixes)
QUERY_NAME_PATTERN = re.compile(r"^\s*--\s*name\s*:\s*([\w-]+[^\w\s]*)\s*$", re.MULTILINE | re.IGNORECASE)
NAMESPACE_PATTERN = re.compile(r"^\s*--\s*namespace\s*:\s*(?P<namespace>[\w.]+)\s*$", re.MULTILINE | re.IGNORECASE)
DIRECTIVE_PATTERN = re.compile(
    r"^--\s*(?P<key>result|parameter|command|use-cache|dialect)\s*:\s*(?P<value>.+?)\s*$", re.IGNORECASE
)
TRIM_SPECIAL_CHARS = re.compile(r"[^\w-]")
PLACEHOLDER_PATTERN = re.compile(r"#\{[^}]+\}")

TYPE_ALIASES: "Final[dict[str, Any]]" = {
    "map": dict,
    "dict": dict,
    "hashmap": dict,
    "int": int,
    "integer": int,
    "long": int,
    "str": str,
    "string": str,
    "float": float,
    "double": float,
    "bool": bool,
    "boolean": bool,
    "decimal": Decimal,
    "bigdecimal": Decimal,
    "date": date,
    "datetime": datetime,
    "bytes": bytes,
}

_TRUE_VALUES: Final = frozenset({"true", "yes", "1", "on"})
_FALSE_VALUES: Final = frozenset({"false", "no", "0", "off"})
_QUERY_KEYWORDS: Final = frozenset({"select", "with", "values", "pragma", "show", "explain", "describe"})
_XML_COMMAND_TAGS: Final = {
    "select": CommandKind.QUERY,
    "insert": CommandKind.INSERT,
    "update": CommandKind.UPDATE,
    "delete": CommandKind.DELETE,
}
_DIRECTLY_ADDED: Final = "<directly added>"


def _normalize_statement_name(name: str) -> str:
    """Normalize a statement name to a valid Python identifier.

    Strips aiosql suffixes such as ``!`` or ``$`` and replaces hyphens with
    underscores.
    """
    return TRIM_SPECIAL_CHARS.sub("", name).replace("-", "_")


def resolve_type_name(type_name: "Optional[str]", default: Any = None) -> Any:
    """Resolve a result or parameter type name.

    Short aliases (``map``, ``int``, ``string`` ...) are looked up first; any
    other name is imported as a dotted path.

    Raises:
        ConfigurationError: If the name cannot be imported.
    """
    if type_name is None or not type_name.strip():
        return default
    name = type_name.strip()
    alias = TYPE_ALIASES.get(name.lower())
    if alias is not None:
        return alias
    try:
        return import_string(name)
    except ImportError as e:
        msg = f"Cannot resolve type {name!r}: {e}"
        raise ConfigurationError(msg) from e


def _parse_flag(value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    msg = f"Invalid boolean value {value!r}"
    raise ValueError(msg)


def infer_command_kind(sql: str, dialect: "Optional[str]" = None) -> CommandKind:
    """Infer the command kind of a SQL template.

    ``#{name}`` placeholders are replaced by ``?`` and the statement is parsed
    with sqlglot. Statements sqlglot cannot parse fall back to their first
    keyword; anything that is not a recognizable read is treated as an update.
    """
    probe = PLACEHOLDER_PATTERN.sub("?", sql)
    try:
        expression = sqlglot.parse_one(probe, read=dialect)
    except (SqlglotError, ValueError):
        expression = None
    if isinstance(expression, exp.Query):
        return CommandKind.QUERY
    if isinstance(expression, exp.Insert):
        return CommandKind.INSERT
    if isinstance(expression, exp.Update):
        return CommandKind.UPDATE
    if isinstance(expression, exp.Delete):
        return CommandKind.DELETE

    words = probe.strip().split(None, 1)
    keyword = words[0].lower() if words else ""
    if keyword in _QUERY_KEYWORDS:
        return CommandKind.QUERY
    if keyword in {"insert", "replace", "merge"}:
        return CommandKind.INSERT
    if keyword == "delete":
        return CommandKind.DELETE
    return CommandKind.UPDATE


class NamedStatement:
    """A statement section parsed from a SQL file, before type resolution."""

    __slots__ = ("directives", "name", "sql", "start_line")

    def __init__(self, name: str, sql: str, directives: "Optional[dict[str, str]]" = None, start_line: int = 0) -> None:
        self.name = name
        self.sql = sql
        self.directives = directives or {}
        self.start_line = start_line


@dataclass
class SQLFile:
    """A loaded statement file with metadata."""

    content: str
    """The raw file content."""

    path: str
    """Path the file was loaded from."""

    statement_ids: "list[str]" = field(default_factory=list)
    """Ids of the statements the file registered."""

    checksum: str = field(init=False)
    """MD5 checksum of the content, used to detect changed files on reload."""

    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """Timestamp when the file was loaded."""

    def __post_init__(self) -> None:
        self.checksum = hashlib.md5(self.content.encode(), usedforsecurity=False).hexdigest()


class SQLFileLoader:
    """Builds statement descriptors from SQL files and mapper XML.

    Example:
        ```python
        loader = SQLFileLoader()
        loader.load_sql("mappers/")
        loader.load_mapper_xml("mappers/UserMapper.xml")
        configuration = Configuration(loader.build_registry())
        ```
    """

    def __init__(self, *, encoding: str = "utf-8") -> None:
        """Initialize the SQL file loader.

        Args:
            encoding: Text encoding for reading files.
        """
        self.encoding = encoding
        self._statements: dict[str, StatementDescriptor] = {}
        self._files: dict[str, SQLFile] = {}
        self._statement_to_file: dict[str, str] = {}

    def _read_file_content(self, path: Path) -> str:
        """Read a file, raising SQLBatis errors for missing or unreadable files."""
        path_str = str(path)
        if not path.exists():
            raise SQLFileNotFoundError(path.name, path_str)
        try:
            return path.read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise SQLFileParseError(path.name, path_str, e) from e

    @staticmethod
    def _strip_leading_comments(sql_text: str) -> str:
        """Remove leading comment lines from a SQL string."""
        lines = sql_text.strip().split("\n")
        for i, line in enumerate(lines):
            if line.strip() and not line.strip().startswith("--"):
                return "\n".join(lines[i:]).strip()
        return ""

    @staticmethod
    def _parse_sql_content(content: str, file_path: str) -> "list[tuple[Optional[str], NamedStatement]]":
        """Split file content into named statements, each paired with its namespace.

        Raises:
            SQLFileParseError: If no named statements are found or a name repeats.
        """
        name_matches = list(QUERY_NAME_PATTERN.finditer(content))
        if not name_matches:
            raise SQLFileParseError(
                Path(file_path).name, file_path, ValueError("No named SQL statements found (-- name: statement_name)")
            )
        namespace_matches = list(NAMESPACE_PATTERN.finditer(content))

        parsed: list[tuple[Optional[str], NamedStatement]] = []
        seen: set[tuple[Optional[str], str]] = set()
        for i, match in enumerate(name_matches):
            raw_name = match.group(1).strip()
            start_line = content[: match.start()].count("\n")
            end_pos = name_matches[i + 1].start() if i + 1 < len(name_matches) else len(content)
            section = content[match.end() : end_pos]

            namespace: Optional[str] = None
            for namespace_match in namespace_matches:
                if namespace_match.start() < match.start():
                    namespace = namespace_match.group("namespace")

            directives: dict[str, str] = {}
            sql_lines: list[str] = []
            in_header = True
            for line in section.strip().splitlines():
                stripped = line.strip()
                directive = DIRECTIVE_PATTERN.match(stripped) if in_header else None
                if directive is not None:
                    directives[directive.group("key").lower()] = directive.group("value")
                elif NAMESPACE_PATTERN.match(stripped):
                    continue
                else:
                    if stripped and not stripped.startswith("--"):
                        in_header = False
                    sql_lines.append(line)

            sql = SQLFileLoader._strip_leading_comments("\n".join(sql_lines))
            if not sql:
                continue
            name = _normalize_statement_name(raw_name)
            if (namespace, name) in seen:
                raise SQLFileParseError(
                    Path(file_path).name, file_path, ValueError(f"Duplicate statement name: {raw_name}")
                )
            seen.add((namespace, name))
            parsed.append((namespace, NamedStatement(name, sql, directives, start_line)))

        if not parsed:
            raise SQLFileParseError(
                Path(file_path).name, file_path, ValueError("No valid SQL statements found after parsing")
            )
        return parsed

    @staticmethod
    def _build_descriptor(statement_id: str, statement: NamedStatement, file_path: str) -> StatementDescriptor:
        directives = statement.directives
        try:
            command = directives.get("command")
            command_kind = (
                CommandKind.from_name(command)
                if command
                else infer_command_kind(statement.sql, directives.get("dialect"))
            )
            use_cache = _parse_flag(directives["use-cache"]) if "use-cache" in directives else True
            return StatementDescriptor(
                statement_id,
                command_kind,
                statement.sql,
                parameter_type=resolve_type_name(directives.get("parameter")),
                result_type=resolve_type_name(directives.get("result"), dict),
                use_cache=use_cache,
            )
        except (ConfigurationError, ValueError) as e:
            raise SQLFileParseError(Path(file_path).name, file_path, e) from e

    def _register(self, descriptor: StatementDescriptor, source: str) -> None:
        existing = self._statement_to_file.get(descriptor.id)
        if existing is not None and existing != source:
            msg = f"Statement id '{descriptor.id}' already exists in file: {existing}"
            raise SQLFileParseError(Path(source).name, source, ValueError(msg))
        self._statements[descriptor.id] = descriptor
        self._statement_to_file[descriptor.id] = source

    def _forget_file(self, path_str: str) -> None:
        sql_file = self._files.pop(path_str, None)
        if sql_file is None:
            return
        for statement_id in sql_file.statement_ids:
            self._statements.pop(statement_id, None)
            self._statement_to_file.pop(statement_id, None)

    def load_sql(self, *paths: "Union[str, Path]", namespace: "Optional[str]" = None) -> None:
        """Load SQL files, or every ``*.sql`` file below a directory.

        Statements are namespaced by their file's ``-- namespace:`` directive,
        else by ``namespace``, else by their subdirectory below a loaded
        directory. Files whose content has not changed since they were last
        loaded are skipped.

        Args:
            *paths: One or more file or directory paths.
            namespace: Default namespace for statements without a directive.

        Raises:
            SQLFileNotFoundError: If a path does not exist.
            SQLFileParseError: If a file cannot be read or parsed.
        """
        correlation_id = get_correlation_id()
        start_time = time.perf_counter()
        statement_count_before = len(self._statements)
        loaded_count = 0

        logger.info("Loading SQL files", extra={"file_count": len(paths), "correlation_id": correlation_id})
        for path in paths:
            path_obj = Path(path)
            if path_obj.is_dir():
                loaded_count += self._load_directory(path_obj, namespace)
            else:
                self._load_single_file(path_obj, namespace)
                loaded_count += 1

        duration_ms = (time.perf_counter() - start_time) * 1000
        new_statements = len(self._statements) - statement_count_before
        logger.info(
            "Loaded %d SQL files with %d new statements in %.3fms",
            loaded_count,
            new_statements,
            duration_ms,
            extra={"files_loaded": loaded_count, "new_statements": new_statements, "correlation_id": correlation_id},
        )

    def _load_directory(self, dir_path: Path, namespace: "Optional[str]") -> int:
        sql_files = sorted(dir_path.rglob("*.sql"))
        for file_path in sql_files:
            parts = file_path.relative_to(dir_path).parent.parts
            directory_namespace = ".".join(parts) if parts else None
            if namespace and directory_namespace:
                directory_namespace = f"{namespace}.{directory_namespace}"
            self._load_single_file(file_path, directory_namespace or namespace)
        return len(sql_files)

    def _load_single_file(self, file_path: Path, namespace: "Optional[str]") -> None:
        path_str = str(file_path)
        content = self._read_file_content(file_path)
        sql_file = SQLFile(content=content, path=path_str)
        cached = self._files.get(path_str)
        if cached is not None and cached.checksum == sql_file.checksum:
            logger.debug("SQL file %s unchanged; skipping", path_str)
            return
        self._forget_file(path_str)

        for file_namespace, statement in self._parse_sql_content(content, path_str):
            prefix = file_namespace or namespace
            statement_id = f"{prefix}.{statement.name}" if prefix else statement.name
            self._register(self._build_descriptor(statement_id, statement, path_str), path_str)
            sql_file.statement_ids.append(statement_id)
        self._files[path_str] = sql_file

    def load_mapper_xml(self, *paths: "Union[str, Path]") -> None:
        """Load MyBatis-style mapper XML files.

        Each ``<mapper namespace="...">`` contributes its ``<select>``,
        ``<insert>``, ``<update>`` and ``<delete>`` elements, with optional
        ``resultType``, ``parameterType`` and ``useCache`` attributes.

        Raises:
            SQLFileNotFoundError: If a path does not exist.
            SQLFileParseError: If a file is not a valid mapper document.
        """
        for path in paths:
            file_path = Path(path)
            path_str = str(file_path)
            content = self._read_file_content(file_path)
            sql_file = SQLFile(content=content, path=path_str)
            cached = self._files.get(path_str)
            if cached is not None and cached.checksum == sql_file.checksum:
                continue
            self._forget_file(path_str)

            for descriptor in self._parse_mapper_xml(content, path_str):
                self._register(descriptor, path_str)
                sql_file.statement_ids.append(descriptor.id)
            self._files[path_str] = sql_file
            logger.info("Loaded mapper XML %s with %d statements", path_str, len(sql_file.statement_ids))

    @staticmethod
    def _parse_mapper_xml(content: str, file_path: str) -> "list[StatementDescriptor]":
        name = Path(file_path).name
        try:
            root = ET.fromstring(content)  # noqa: S314
        except ET.ParseError as e:
            raise SQLFileParseError(name, file_path, e) from e
        if root.tag != "mapper":
            raise SQLFileParseError(name, file_path, ValueError(f"Expected <mapper> root element, found <{root.tag}>"))
        namespace = (root.get("namespace") or "").strip()
        if not namespace:
            raise SQLFileParseError(name, file_path, ValueError("<mapper> requires a namespace attribute"))

        descriptors: list[StatementDescriptor] = []
        seen: set[str] = set()
        for element in root:
            command_kind = _XML_COMMAND_TAGS.get(str(element.tag))
            if command_kind is None:
                continue
            statement_name = (element.get("id") or "").strip()
            if not statement_name:
                raise SQLFileParseError(name, file_path, ValueError(f"<{element.tag}> requires an id attribute"))
            if statement_name in seen:
                raise SQLFileParseError(name, file_path, ValueError(f"Duplicate statement name: {statement_name}"))
            seen.add(statement_name)
            try:
                use_cache = _parse_flag(element.get("useCache", "true"))
                descriptors.append(
                    StatementDescriptor(
                        f"{namespace}.{statement_name}",
                        command_kind,
                        "".join(element.itertext()).strip(),
                        parameter_type=resolve_type_name(element.get("parameterType")),
                        result_type=resolve_type_name(element.get("resultType"), dict),
                        use_cache=use_cache,
                    )
                )
            except (ConfigurationError, ValueError) as e:
                raise SQLFileParseError(name, file_path, e) from e
        return descriptors

    def add_named_sql(
        self,
        statement_id: str,
        sql: str,
        *,
        command: "Optional[Union[CommandKind, str]]" = None,
        parameter_type: "Optional[type[Any]]" = None,
        result_type: Any = dict,
        use_cache: bool = True,
    ) -> StatementDescriptor:
        """Add a statement directly without loading it from a file.

        Raises:
            ConfigurationError: If the statement id already exists.
        """
        if statement_id in self._statements:
            existing_source = self._statement_to_file.get(statement_id, _DIRECTLY_ADDED)
            msg = f"Statement id '{statement_id}' already exists (source: {existing_source})"
            raise ConfigurationError(msg)
        if command is None:
            command_kind = infer_command_kind(sql)
        elif isinstance(command, CommandKind):
            command_kind = command
        else:
            command_kind = CommandKind.from_name(command)
        descriptor = StatementDescriptor(
            statement_id,
            command_kind,
            sql.strip(),
            parameter_type=parameter_type,
            result_type=result_type,
            use_cache=use_cache,
        )
        self._statements[statement_id] = descriptor
        self._statement_to_file[statement_id] = _DIRECTLY_ADDED
        return descriptor

    def get_statement(self, statement_id: str) -> StatementDescriptor:
        """Return a loaded statement.

        Raises:
            ConfigurationError: If no statement is loaded under the id.
        """
        statement = self._statements.get(statement_id)
        if statement is None:
            msg = f"Statement '{statement_id}' not found"
            suggestions = get_close_matches(statement_id, list(self._statements), n=3, cutoff=0.6)
            if suggestions:
                msg += f". Did you mean: {', '.join(suggestions)}?"
            raise ConfigurationError(msg)
        return statement

    def has_statement(self, statement_id: str) -> bool:
        return statement_id in self._statements

    def list_statements(self) -> "list[str]":
        return sorted(self._statements)

    def list_files(self) -> "list[str]":
        return list(self._files)

    def get_file(self, path: "Union[str, Path]") -> "Optional[SQLFile]":
        return self._files.get(str(path))

    def get_file_for_statement(self, statement_id: str) -> "Optional[SQLFile]":
        path = self._statement_to_file.get(statement_id)
        return self._files.get(path) if path else None

    def clear(self) -> None:
        """Forget every loaded file and statement."""
        self._statements.clear()
        self._files.clear()
        self._statement_to_file.clear()

    def build_registry(self) -> StatementRegistry:
        """Return an immutable registry of every loaded statement."""
        return StatementRegistry(self._statements.values())
