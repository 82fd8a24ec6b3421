"""
Reading and writing of the .env files that hold an instance's resolved environment.
"""
import io
import os
from typing import Dict

from dotenv import dotenv_values, set_key


class EnvParser:
    """
    Parser for .env files.
    """
    @staticmethod
    def parse(env_path: str) -> Dict[str, str]:
        """
        Parses an .env file from a path.

        Args:
            env_path (str): Path to the .env file.

        Returns:
            Dict[str, str]: Dictionary of environment variables.
        """
        values = dotenv_values(env_path, interpolate=False)
        return {key: value if value is not None else "" for key, value in values.items()}

    @staticmethod
    def parse_from_string(content: str) -> Dict[str, str]:
        """
        Parses environment variables from a string.
        Handles quotes, comments and escaped characters.
        """
        values = dotenv_values(stream=io.StringIO(content), interpolate=False)
        return {key: value if value is not None else "" for key, value in values.items()}

    @staticmethod
    def write(env_path: str, env: Dict[str, str]):
        """
        Replaces the contents of an .env file with `env`, one quoted KEY="value" per line.

        Args:
            env_path (str): Path to the .env file.
            env (Dict[str, str]): Variables to write.
        """
        os.makedirs(os.path.dirname(os.path.abspath(env_path)), exist_ok=True)
        with open(env_path, 'w'):
            pass
        for key in sorted(env):
            set_key(env_path, key, env[key], quote_mode="always")
