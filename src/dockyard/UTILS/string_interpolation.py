"""
Placeholder substitution for catalog values such as ${CATALOG_DIR}.
"""
import re
from typing import Dict

PLACEHOLDER = re.compile(r'\$\{([^}:]+)(?::(-|\+)([^}]*))?\}')


class PlaceholderInterpolator:
    """
    Substitutes ${VAR}, ${VAR:-default} and ${VAR:+value} from a context.
    Placeholders without a value and without a modifier are left untouched so
    container-side variables survive catalog loading.
    """
    @staticmethod
    def interpolate(template: str, context: Dict[str, str]) -> str:
        """
        Interpolates the placeholders in the template string using the provided context.

        :param template: The string containing ${VAR} placeholders.
        :param context: Values available for substitution.
        :return: The interpolated string.
        """
        def replace(match):
            var_name = match.group(1)
            modifier = match.group(2)
            alt_value = match.group(3)

            value = context.get(var_name)

            if modifier == '-':
                return value if value else alt_value
            elif modifier == '+':
                return alt_value if value else ''
            if value is None:
                return match.group(0)
            return value

        return PLACEHOLDER.sub(replace, template)
