"""
String utility functions.
"""


def escape_string(s: str) -> str:
    """
    Escape a string for single-line display.

    Args:
        s: Input string

    Returns:
        Escaped string with quotes, backslashes and control characters
        spelled out
    """
    result = []
    for char in s:
        if char == '\\':
            result.append('\\\\')
        elif char == '"':
            result.append('\\"')
        elif char == '\n':
            result.append('\\n')
        elif char == '\r':
            result.append('\\r')
        elif char == '\t':
            result.append('\\t')
        elif char == '\0':
            result.append('\\0')
        elif ord(char) < 32 or ord(char) == 127:
            result.append(f'\\x{ord(char):02x}')
        else:
            result.append(char)
    return ''.join(result)


def to_camel_case(snake_str: str) -> str:
    """
    Convert snake_case to camelCase.

    Args:
        snake_str: String in snake_case

    Returns:
        String in camelCase
    """
    components = snake_str.split('_')
    return components[0] + ''.join(x.title() for x in components[1:])


def to_snake_case(camel_str: str) -> str:
    """Convert camelCase to snake_case."""
    return ''.join(f'_{c.lower()}' if c.isupper() else c for c in camel_str).lstrip('_')


def split_list(value: str) -> list:
    """Split a comma separated option, dropping empty entries."""
    return [item.strip() for item in value.split(',') if item.strip()]


def split_section_list(value: str) -> list:
    """
    Split a comma separated list of section names.

    Entries are either a section name or segname,sectname. Segment names
    are upper case, so an upper case entry followed by a lower case one is
    rejoined into a single segname,sectname pair.
    """
    result = []
    for item in split_list(value):
        if result and result[-1].isupper() and ',' not in result[-1] and not item.isupper():
            result[-1] = f"{result[-1]},{item}"
        else:
            result.append(item)
    return result
