from dotenv import load_dotenv

from .configuration import GatewayConfiguration
from .loader import get_bool_env, get_float_env, get_int_env, get_str_env

load_dotenv()

__all__ = [
    "GatewayConfiguration",
    "get_bool_env",
    "get_float_env",
    "get_int_env",
    "get_str_env",
]
