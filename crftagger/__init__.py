"""Linear-chain CRF decoding: model artifacts, feature lookup and Viterbi tagging."""
from .errors import CRFError, FormatError, IllegalStateError, ModelFormatError
from .model import CRFModel, load, load_binary_file, save, save_binary_file
from .types import Sequence, Token

__all__ = [
    "CRFError",
    "CRFModel",
    "FormatError",
    "IllegalStateError",
    "ModelFormatError",
    "Sequence",
    "Token",
    "load",
    "load_binary_file",
    "save",
    "save_binary_file",
]

__version__ = "0.1.0"
