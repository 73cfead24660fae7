"""Typed model of nginx configuration files generated by ``bench setup nginx``.

The model is intentionally small: a file is a list of :class:`Directive`,
:class:`Block` and :class:`Comment` nodes. Quoted arguments keep their quotes
so values survive a load/dump cycle unchanged; formatting does not, because
:meth:`NginxConfig.dumps` always emits a canonical layout (four-space
indentation, one statement per line).
"""
from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path


class NginxConfigError(ValueError):
    """Raised when an nginx configuration cannot be parsed."""


@dataclass(slots=True)
class Directive:
    """A simple ``name arg ...;`` statement."""

    name: str
    args: list[str] = field(default_factory=list)

    @classmethod
    def from_text(cls, text: str) -> Directive:
        """Parse a single directive such as ``expires 1y``."""
        source = text.strip()
        if not source.endswith(";"):
            source += ";"
        nodes = _Parser(_tokenize(source)).parse()
        if len(nodes) != 1 or not isinstance(nodes[0], Directive):
            raise NginxConfigError(f"Expected a single directive, got {text!r}.")
        return nodes[0]


@dataclass(slots=True)
class Comment:
    """A ``#`` comment line."""

    text: str


@dataclass(slots=True)
class Block:
    """A ``name arg ... { ... }`` block such as ``server`` or ``location``."""

    name: str
    args: list[str] = field(default_factory=list)
    children: list[Node] = field(default_factory=list)

    def blocks(self, name: str, args: Sequence[str] | None = None) -> list[Block]:
        """Return direct child blocks called *name* (optionally matching *args*)."""
        return [
            child
            for child in self.children
            if isinstance(child, Block)
            and child.name == name
            and (args is None or child.args == list(args))
        ]

    def directives(self, name: str) -> list[Directive]:
        """Return direct child directives called *name*."""
        return [
            child for child in self.children if isinstance(child, Directive) and child.name == name
        ]


Node = Directive | Block | Comment


@dataclass(slots=True)
class NginxConfig:
    """A parsed nginx configuration file."""

    children: list[Node] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> NginxConfig:
        """Parse configuration *text*."""
        return cls(children=_Parser(_tokenize(text)).parse())

    @classmethod
    def load(cls, path: Path) -> NginxConfig:
        """Read and parse the configuration stored at *path*."""
        return cls.parse(path.read_text(encoding="utf-8"))

    def save(self, path: Path) -> None:
        """Write the canonical serialisation to *path*, preserving its mode."""
        mode = path.stat().st_mode if path.exists() else None
        temp = path.with_name(f"{path.name}.tmp")
        temp.write_text(self.dumps(), encoding="utf-8")
        if mode is not None:
            temp.chmod(mode)
        temp.replace(path)

    def dumps(self) -> str:
        """Return the canonical text form of the configuration."""
        lines: list[str] = []
        previous: Node | None = None
        for node in self.children:
            if previous is not None and (isinstance(node, Block) or isinstance(previous, Block)):
                lines.append("")
            _emit(node, 0, lines)
            previous = node
        return "\n".join(lines) + "\n"

    def walk(self) -> Iterator[Block]:
        """Yield every block in document order, depth first."""
        stack: list[Node] = list(reversed(self.children))
        while stack:
            node = stack.pop()
            if isinstance(node, Block):
                yield node
                stack.extend(reversed(node.children))

    def find_blocks(self, name: str, args: Sequence[str] | None = None) -> list[Block]:
        """Return all blocks called *name* at any depth."""
        wanted = list(args) if args is not None else None
        return [
            block
            for block in self.walk()
            if block.name == name and (wanted is None or block.args == wanted)
        ]

    def iter_directives(self, name: str) -> Iterator[Directive]:
        """Yield every directive called *name* at any depth."""
        for node in self.children:
            if isinstance(node, Directive) and node.name == name:
                yield node
        for block in self.walk():
            yield from block.directives(name)

    def set_asset_location(self, alias: Path | str, directives: Sequence[str]) -> int:
        """Point the configuration's single ``location /assets`` at *alias*.

        The first existing ``location /assets`` block is replaced in place by
        ``alias <alias>;`` followed by *directives*; any other ``/assets``
        block in any server is removed. When the file has none, the block is
        appended to the first server that does not just ``return`` (a redirect
        server). Returns the number of pre-existing blocks that were replaced.
        """
        servers = self.find_blocks("server")
        if not servers:
            raise NginxConfigError("No server block found in nginx configuration.")
        replacement = Block(
            name="location",
            args=["/assets"],
            children=[
                Directive("alias", [str(alias)]),
                *(Directive.from_text(text) for text in directives),
            ],
        )
        existing = [
            (server, block)
            for server in servers
            for block in server.blocks("location", ["/assets"])
        ]
        if not existing:
            serving = [server for server in servers if not server.directives("return")]
            (serving or servers)[0].children.append(replacement)
            return 0
        owner, first = existing[0]
        owner.children[owner.children.index(first)] = replacement
        for server, block in existing[1:]:
            server.children.remove(block)
        return len(existing)

    def drop_access_log_format(self, format_name: str = "main") -> int:
        """Remove *format_name* from ``access_log`` directives that reference it.

        ``bench`` emits ``access_log <path> main;`` which fails ``nginx -t`` when
        no ``log_format main`` is defined. Returns the number of directives
        changed.
        """
        changed = 0
        for directive in self.iter_directives("access_log"):
            if len(directive.args) >= 2 and directive.args[1] == format_name:
                del directive.args[1]
                changed += 1
        return changed

    def asset_aliases(self) -> list[str]:
        """Return the alias of every ``location /assets`` block."""
        aliases: list[str] = []
        for block in self.find_blocks("location", ["/assets"]):
            for directive in block.directives("alias"):
                if directive.args:
                    aliases.append(directive.args[0])
        return aliases


def _emit(node: Node, depth: int, lines: list[str]) -> None:
    indent = "    " * depth
    if isinstance(node, Comment):
        lines.append(f"{indent}{node.text}")
    elif isinstance(node, Directive):
        head = " ".join([node.name, *node.args])
        lines.append(f"{indent}{head};")
    else:
        head = " ".join([node.name, *node.args])
        lines.append(f"{indent}{head} {{")
        for child in node.children:
            _emit(child, depth + 1, lines)
        lines.append(f"{indent}}}")


# Tokenizer / parser
_SPECIAL = {"{", "}", ";"}


def _tokenize(text: str) -> list[tuple[str, str, int]]:
    """Split *text* into ``(kind, value, line)`` tokens."""
    tokens: list[tuple[str, str, int]] = []
    index = 0
    line = 1
    length = len(text)
    while index < length:
        char = text[index]
        if char == "\n":
            line += 1
            index += 1
            continue
        if char.isspace():
            index += 1
            continue
        if char == "#":
            end = text.find("\n", index)
            end = length if end == -1 else end
            tokens.append(("comment", text[index:end].rstrip(), line))
            index = end
            continue
        if char in _SPECIAL:
            tokens.append((char, char, line))
            index += 1
            continue
        start = index
        start_line = line
        while index < length:
            char = text[index]
            if char in "\"'":
                quote = char
                index += 1
                while index < length and text[index] != quote:
                    if text[index] == "\\":
                        index += 1
                    elif text[index] == "\n":
                        line += 1
                    index += 1
                if index >= length:
                    raise NginxConfigError(f"Unterminated quoted string on line {start_line}.")
                index += 1
                continue
            if char == "$" and index + 1 < length and text[index + 1] == "{":
                end = text.find("}", index)
                if end == -1:
                    raise NginxConfigError(f"Unterminated variable on line {line}.")
                index = end + 1
                continue
            if char.isspace() or char in _SPECIAL:
                break
            if char == "\\" and index + 1 < length:
                index += 2
                continue
            index += 1
        tokens.append(("word", text[start:index], start_line))
    return tokens


class _Parser:
    def __init__(self, tokens: list[tuple[str, str, int]]) -> None:
        self._tokens = tokens
        self._pos = 0

    def parse(self) -> list[Node]:
        nodes = self._statements(closing=False)
        if self._pos < len(self._tokens):  # pragma: no cover - guarded by _statements
            _, value, line = self._tokens[self._pos]
            raise NginxConfigError(f"Unexpected '{value}' on line {line}.")
        return nodes

    def _statements(self, *, closing: bool) -> list[Node]:
        nodes: list[Node] = []
        words: list[str] = []
        while self._pos < len(self._tokens):
            kind, value, line = self._tokens[self._pos]
            self._pos += 1
            if kind == "comment":
                if words:
                    # Comments inside a statement are dropped.
                    continue
                nodes.append(Comment(value))
            elif kind == "word":
                words.append(value)
            elif kind == ";":
                if not words:
                    raise NginxConfigError(f"Empty statement on line {line}.")
                nodes.append(Directive(words[0], words[1:]))
                words = []
            elif kind == "{":
                if not words:
                    raise NginxConfigError(f"Block without a name on line {line}.")
                children = self._statements(closing=True)
                nodes.append(Block(words[0], words[1:], children))
                words = []
            else:  # "}"
                if not closing:
                    raise NginxConfigError(f"Unexpected '}}' on line {line}.")
                if words:
                    raise NginxConfigError(f"Missing ';' before '}}' on line {line}.")
                return nodes
        if closing:
            raise NginxConfigError("Unexpected end of file: missing '}'.")
        if words:
            raise NginxConfigError("Unexpected end of file: missing ';'.")
        return nodes


__all__ = ["Block", "Comment", "Directive", "NginxConfig", "NginxConfigError", "Node"]
