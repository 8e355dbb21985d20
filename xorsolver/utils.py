#!/usr/bin/env python3
# utils.py (repeated-key XOR transform + keysize estimator + key space + text scorer)
from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Union
from pathlib import Path
import base64, binascii, io, json, math

CHUNK_SIZE = 1024
KEY_ALPHABET_SIZE = 128
DEFAULT_SAMPLE_PAIRS = 2

# Expected relative frequency (percent) of letters and space in English prose.
ENGLISH_FREQS: Dict[str, float] = {
    ' ': 18.29, 'e': 10.27, 't': 7.52, 'a': 6.53, 'o': 6.16, 'n': 5.71,
    'i': 5.67, 's': 5.32, 'r': 4.99, 'h': 4.98, 'l': 3.32, 'd': 3.28,
    'u': 2.28, 'c': 2.23, 'm': 2.03, 'f': 1.98, 'w': 1.70, 'g': 1.62,
    'p': 1.50, 'y': 1.43, 'b': 1.26, 'v': 0.80, 'k': 0.56, 'x': 0.14,
    'j': 0.10, 'q': 0.08, 'z': 0.05,
}

DEFAULT_WORDS = """
the of and to in a is that it for on as with by this you not are or have from at which
one had were all we can her has there their more be would when who will no if about out
up so what some into could them time only year over new other people than first water
like then now look also even back after use two how our work way well life know
""".split()

# Bytes plausible in decoded text: printable ASCII, tab/newline/CR, and any byte
# with the high bit set (UTF-8 sequences). Key bytes are < 0x80 so high bytes
# never change under decryption.
TEXT_BYTES = frozenset(range(32, 127)) | {9, 10, 13} | frozenset(range(128, 256))
NOISE_TOLERANCE = 0.05

# -------------------------------
# Errors
# -------------------------------
class InvalidKey(ValueError):
    """Key is empty where a non-empty key is required."""

class UnderlyingReadFailure(IOError):
    """The byte source feeding a transform failed to produce bytes."""

# -------------------------------
# Data models
# -------------------------------
@dataclass
class DecryptionResult:
    key_length: int
    key: bytes
    decrypted: bytes
    formatted: str
    score: float
    char_score: float
    word_score: float
    keysize_distance: Optional[float] = None

# -------------------------------
# Repeated-key XOR
# -------------------------------
def xor_stream(source, key: bytes,
               on_key_reuse: Optional[Callable[[], None]] = None,
               chunk_size: int = CHUNK_SIZE) -> bytes:
    """
    XOR every byte read from `source` against `key`, repeating the key as needed.

    `source` is anything with a binary ``read(n)`` method, or a bytes-like object.
    The same call encrypts and decrypts. `on_key_reuse` is called at most once,
    the first time the key has to wrap around.
    """
    key = bytes(key)
    if not key:
        raise InvalidKey("key must contain at least one byte")
    if isinstance(source, (bytes, bytearray, memoryview)):
        source = io.BytesIO(bytes(source))

    klen = len(key)
    key_idx = 0
    warned = False
    out = bytearray()
    while True:
        try:
            data = source.read(chunk_size)
        except OSError as e:
            raise UnderlyingReadFailure(f"failed reading input: {e}") from e
        if not data:
            break
        for b in data:
            if key_idx == klen:
                key_idx = 0
                if not warned:
                    warned = True
                    if on_key_reuse is not None:
                        on_key_reuse()
            out.append(b ^ key[key_idx])
            key_idx += 1
    return bytes(out)

def xor_bytes(data: bytes, key: bytes, on_key_reuse: Optional[Callable[[], None]] = None) -> bytes:
    return xor_stream(data, key, on_key_reuse=on_key_reuse)

# -------------------------------
# Keysize estimation
# -------------------------------
def hamming_distance(a: bytes, b: bytes) -> int:
    """Number of differing bits between two equal-length byte strings."""
    if len(a) != len(b):
        raise ValueError("Inputs are of different length")
    return sum(bin(x ^ y).count("1") for x, y in zip(a, b))

def estimate_keysizes(ciphertext: bytes, max_keysize: int,
                      sample_pairs: Optional[int] = DEFAULT_SAMPLE_PAIRS,
                      on_insufficient_data: Optional[Callable[[int], None]] = None) -> Dict[int, float]:
    """
    Average normalized Hamming distance between disjoint adjacent chunk pairs,
    for every keysize 1..max_keysize. Smaller values are more likely keysizes.

    `sample_pairs` caps how many pairs are compared per keysize (None compares
    every available pair). Keysizes with no comparable pair are left out.
    """
    table: Dict[int, float] = {}
    n = len(ciphertext)
    for size in range(1, max_keysize + 1):
        pairs = n // (2 * size)
        if sample_pairs is not None:
            pairs = min(pairs, sample_pairs)
        if pairs == 0:
            if on_insufficient_data is not None:
                on_insufficient_data(size)
            continue
        total = 0.0
        for p in range(pairs):
            start = 2 * p * size
            first = ciphertext[start:start + size]
            second = ciphertext[start + size:start + 2 * size]
            total += hamming_distance(first, second) / size
        table[size] = total / pairs
    return table

def best_keysizes(table: Dict[int, float], count: int = 3) -> List[int]:
    ranked = sorted(table.items(), key=lambda kv: (kv[1], kv[0]))
    return [size for size, _ in ranked[:count]]

# -------------------------------
# Candidate keys
# -------------------------------
class AsciiKeySpace:
    """
    Every key of `length` bytes drawn from 0..127, in lexicographic order.

    Iterating walks a fixed-width base-128 counter (last byte varies fastest), so
    keys are produced one at a time and the space can be traversed again.
    """
    def __init__(self, length: int):
        if length < 0:
            raise ValueError("key length must be >= 0")
        self.length = length

    def __len__(self) -> int:
        return KEY_ALPHABET_SIZE ** self.length

    def __iter__(self) -> Iterator[bytes]:
        counter = bytearray(self.length)
        while True:
            yield bytes(counter)
            pos = self.length - 1
            while pos >= 0:
                counter[pos] += 1
                if counter[pos] < KEY_ALPHABET_SIZE:
                    break
                counter[pos] = 0
                pos -= 1
            if pos < 0:
                return

def gen_ascii_keys(length: int) -> List[bytes]:
    """Materialized form of AsciiKeySpace; only sensible for small lengths."""
    return list(AsciiKeySpace(length))

def guess_keys_from_words(words: Iterable[str], length: int) -> Iterator[bytes]:
    seen = set()
    for w in words:
        if len(w) != length or w in seen:
            continue
        seen.add(w)
        try:
            yield w.encode("ascii")
        except UnicodeEncodeError:
            continue

# -------------------------------
# Scoring
# -------------------------------
def _as_text(text: Union[str, bytes]) -> str:
    if isinstance(text, (bytes, bytearray)):
        return bytes(text).decode("latin-1")
    return text

def score_char(ch: str) -> float:
    """Expected English frequency of `ch` (case-folded); 0.0 if not in the table."""
    return ENGLISH_FREQS.get(ch.lower(), 0.0)

def score_string(text: Union[str, bytes]) -> float:
    """
    Character-frequency discrepancy against ENGLISH_FREQS (lower is closer).

    Only letters and space are counted; the sum is scaled by the share of the
    input made of those characters.
    """
    s = _as_text(text)
    if not s:
        return 0.0
    known = [ch for ch in s.lower() if ch in ENGLISH_FREQS]
    if not known:
        return 0.0
    counts: Dict[str, int] = {}
    for ch in known:
        counts[ch] = counts.get(ch, 0) + 1
    total = 0.0
    for ch, c in counts.items():
        observed = 100.0 * c / len(known)
        total += abs(ENGLISH_FREQS[ch] - observed) * 10
    return total * (len(known) / len(s))

def score_words(text: Union[str, bytes], words: Iterable[str]) -> float:
    """
    Bonus of 3*e**len(word) for every dictionary word found in `text`.

    Words are tried in the given order (longest first is expected). Each match
    removes one occurrence from a working copy so text is never counted twice.
    """
    remaining = _as_text(text).lower()
    score = 0.0
    for w in words:
        if w and w in remaining:
            score += 3 * math.exp(len(w))
            remaining = remaining.replace(w, "", 1)
    return score

def score_text(text: Union[str, bytes], words: Optional[Iterable[str]] = None) -> float:
    # Plain sum of both terms: only meaningful for ranking under one configuration.
    score = score_string(text)
    if words:
        score += score_words(text, words)
    return score

def text_fitness(text: Union[str, bytes], words: Optional[Iterable[str]] = None) -> float:
    """Word bonus minus character discrepancy, so higher always means more English."""
    fitness = -score_string(text)
    if words:
        fitness += score_words(text, words)
    return fitness

def column_fitness(column: bytes) -> float:
    return sum(score_char(chr(b)) for b in column)

# -------------------------------
# Input / output helpers
# -------------------------------
def count_unlikely(data: bytes) -> int:
    """Number of bytes that would not appear in ordinary (UTF-8) text."""
    return sum(1 for b in data if b not in TEXT_BYTES)

def printable_preview(data: bytes, limit: Optional[int] = None) -> str:
    segment = data if limit is None else data[:limit]
    return ''.join(chr(b) if 32 <= b < 127 or b in (9, 10, 13) else '.' for b in segment)

def decode_input(value: Union[str, bytes], fmt: str = "raw") -> bytes:
    """Turn user input into bytes. `fmt` is raw, hex or base64."""
    f = (fmt or "raw").strip().lower()
    if f == "hex":
        if isinstance(value, bytes):
            value = value.decode("ascii", errors="replace")
        try:
            return bytes.fromhex(''.join(value.split()))
        except ValueError as e:
            raise ValueError(f"invalid hex input: {e}") from e
    if f == "base64":
        try:
            return base64.b64decode(value, validate=False)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"invalid base64 input: {e}") from e
    if f == "raw":
        return value if isinstance(value, bytes) else value.encode("utf-8")
    raise ValueError("format must be raw, hex or base64")

def encode_output(data: bytes, fmt: str = "hex") -> str:
    f = (fmt or "hex").strip().lower()
    if f == "base64":
        return base64.b64encode(data).decode("ascii")
    if f == "raw":
        return data.decode("latin-1")
    return data.hex()

def load_word_list(path: Union[Path, str]) -> List[str]:
    """
    Read a word list: plain text (one word per line) or JSON with an
    "english_words" array. Returns lowercase unique words, longest first.
    Read failures are reported and give an empty list.
    """
    p = Path(path)
    try:
        raw = p.read_text(encoding="utf-8", errors="ignore")
    except FileNotFoundError:
        print(f"[!] Word list not found: {path}")
        return []
    except OSError as e:
        print(f"[!] Could not read word list {path}: {e}")
        return []

    if p.suffix.lower() == ".json":
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            print(f"[!] Bad JSON in word list {path}: {e}")
            return []
        items = data.get("english_words", []) if isinstance(data, dict) else data
        candidates = [w for w in items if isinstance(w, str)]
    else:
        candidates = raw.splitlines()

    words: List[str] = []
    seen = set()
    for w in candidates:
        w = w.strip().lower()
        if w and w not in seen:
            seen.add(w)
            words.append(w)
    return sorted(words, key=len, reverse=True)
