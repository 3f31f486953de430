"""
Utility functions.
"""

from .string_utils import escape_string, to_camel_case, to_snake_case, split_list, split_section_list

__all__ = ['escape_string', 'to_camel_case', 'to_snake_case', 'split_list', 'split_section_list']
