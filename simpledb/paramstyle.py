import re

# Statements are always written with qmark (?) placeholders and rewritten here
# to whatever paramstyle the DB-API driver behind the engine declares.
# String literals (single or double quoted, with doubled-quote and backslash
# escapes), backtick identifiers and comments are matched as whole tokens so a
# '?' inside them is never taken for a placeholder. '#' comments follow MySQL.
_TOKEN_RE = re.compile(
    r"'(?:[^'\\]|\\.|'')*'"
    r'|"(?:[^"\\]|\\.|"")*"'
    r"|`(?:[^`]|``)*`"
    r"|--[^\n]*"
    r"|#[^\n]*"
    r"|/\*.*?\*/"
    r"|\?|%",
    re.DOTALL,
)


def count_placeholders(sql):
    return sum(1 for m in _TOKEN_RE.finditer(sql) if m.group(0) == "?")


def convert_params(sql, params, paramstyle):
    params = list(params)

    if paramstyle == "qmark":
        return sql, tuple(params)

    if paramstyle in ("format", "pyformat"):
        def replace(match):
            tok = match.group(0)
            if tok == "?":
                return "%s"
            if tok == "%":
                return "%%"
            return tok.replace("%", "%%")

        return _TOKEN_RE.sub(replace, sql), tuple(params)

    if paramstyle in ("numeric", "named"):
        counter = [0]

        def replace(match):
            tok = match.group(0)
            if tok != "?":
                return tok
            counter[0] += 1
            if paramstyle == "numeric":
                return f":{counter[0]}"
            return f":p{counter[0]}"

        new_sql = _TOKEN_RE.sub(replace, sql)
        if paramstyle == "numeric":
            return new_sql, tuple(params)
        return new_sql, {f"p{i + 1}": v for i, v in enumerate(params)}

    raise ValueError(f"Unsupported paramstyle: {paramstyle}")


def expand_placeholder(sql, count):
    """Replace the ``?`` placeholders of ``sql`` with ``count`` comma-joined
    ``?`` each, leaving quoted literals alone.
    """
    placeholders = ",".join("?" * count)

    def replace(match):
        tok = match.group(0)
        return placeholders if tok == "?" else tok

    return _TOKEN_RE.sub(replace, sql)
