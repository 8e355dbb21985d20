from .utils import (
    InvalidKey, UnderlyingReadFailure, DecryptionResult, ENGLISH_FREQS, AsciiKeySpace,
    xor_stream, xor_bytes, hamming_distance, estimate_keysizes, best_keysizes,
    gen_ascii_keys, guess_keys_from_words, score_char, score_string, score_words,
    score_text, text_fitness, load_word_list
)
from .solver import XorSolver

__version__ = "0.1.0"
