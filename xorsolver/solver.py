#!/usr/bin/env python3
# solver.py (repeated-key XOR breaker: keysize ranking + candidate keys + scoring)
from __future__ import annotations
import argparse, concurrent.futures, os, sys, time
from typing import Dict, Iterable, List, Optional
from pathlib import Path

from .utils import (
    DecryptionResult, InvalidKey, UnderlyingReadFailure, DEFAULT_WORDS, DEFAULT_SAMPLE_PAIRS,
    KEY_ALPHABET_SIZE, NOISE_TOLERANCE, AsciiKeySpace, xor_bytes, estimate_keysizes, best_keysizes,
    guess_keys_from_words, score_string, score_words, column_fitness, count_unlikely,
    printable_preview, decode_input, encode_output, load_word_list
)

STRATEGIES = ("auto", "brute", "columns", "words")
AUTO_BRUTE_LIMIT = 2

class Term:
    RED = '\033[91m'; GREEN = '\033[92m'; YELLOW = '\033[93m'
    BLUE = '\033[94m'; MAGENTA = '\033[95m'; CYAN = '\033[96m'
    BOLD = '\033[1m'; END = '\033[0m'

def _columns(data: bytes, size: int) -> List[bytes]:
    return [data[i::size] for i in range(size)]

# ---------------------------
# Solver
# ---------------------------
class XorSolver:
    def __init__(self, wordlist_path: Optional[str] = None,
                 words: Optional[Iterable[str]] = None,
                 max_keysize: int = 40,
                 top_keysizes: int = 3,
                 sample_pairs: Optional[int] = DEFAULT_SAMPLE_PAIRS,
                 strategy: str = "auto",
                 max_brute_length: int = 3,
                 printable_only: bool = True,
                 top_results: int = 5,
                 verbose: bool = False):
        if strategy not in STRATEGIES:
            raise ValueError(f"strategy must be one of {', '.join(STRATEGIES)}")
        if wordlist_path:
            self.words = load_word_list(wordlist_path)
        elif words is not None:
            self.words = sorted({w.lower() for w in words if w}, key=lambda w: (-len(w), w))
        else:
            self.words = sorted(set(DEFAULT_WORDS), key=lambda w: (-len(w), w))
        self.max_keysize = int(max_keysize)
        self.top_keysizes = int(top_keysizes)
        self.sample_pairs = sample_pairs
        self.strategy = strategy
        self.max_brute_length = int(max_brute_length)
        self.printable_only = bool(printable_only)
        self.top_results = int(top_results)
        self.verbose = verbose

    def _say(self, msg: str, color: str = Term.CYAN):
        if self.verbose:
            print(f"{color}{msg}{Term.END}")

    # --- key length candidates ---
    def keysize_table(self, data: bytes) -> Dict[int, float]:
        skipped: List[int] = []
        table = estimate_keysizes(data, self.max_keysize, sample_pairs=self.sample_pairs,
                                  on_insufficient_data=skipped.append)
        if skipped:
            self._say(f"[*] Not enough data for keysizes {skipped[0]}..{skipped[-1]}", Term.YELLOW)
        return table

    def candidate_key_lengths(self, data: bytes) -> List[int]:
        return best_keysizes(self.keysize_table(data), self.top_keysizes)

    # --- candidate keys ---
    def _viable_bytes(self, column: bytes) -> List[int]:
        """
        Key bytes whose decode of `column` looks like text. A few odd bytes are
        tolerated, and the least noisy bytes are always kept so a column is never
        left without candidates.
        """
        if not self.printable_only:
            return list(range(KEY_ALPHABET_SIZE))
        noise = [count_unlikely(bytes(b ^ k for b in column)) for k in range(KEY_ALPHABET_SIZE)]
        limit = max(min(noise), int(len(column) * NOISE_TOLERANCE))
        return [k for k in range(KEY_ALPHABET_SIZE) if noise[k] <= limit]

    def column_key(self, data: bytes, size: int) -> bytes:
        """Solve each column as single-byte XOR, keeping the most English-looking byte."""
        key = bytearray()
        for column in _columns(data, size):
            viable = self._viable_bytes(column)
            best = max(viable, key=lambda k: (column_fitness(bytes(b ^ k for b in column)), -k))
            key.append(best)
        return bytes(key)

    def brute_keys(self, data: bytes, size: int) -> Iterable[bytes]:
        if size > self.max_brute_length:
            self._say(f"[!] Skipping brute force for keysize {size} (max {self.max_brute_length})", Term.RED)
            return
        viable = [frozenset(self._viable_bytes(c)) for c in _columns(data, size)]
        for key in AsciiKeySpace(size):
            if all(k in allowed for k, allowed in zip(key, viable)):
                yield key

    def _candidate_keys(self, data: bytes, size: int) -> Iterable[bytes]:
        if self.strategy in ("auto", "columns"):
            yield self.column_key(data, size)
        if self.strategy in ("auto", "words"):
            yield from guess_keys_from_words(self.words, size)
        if self.strategy == "brute" or (self.strategy == "auto" and size <= AUTO_BRUTE_LIMIT):
            yield from self.brute_keys(data, size)

    # --- scoring ---
    def score_candidate(self, data: bytes, key: bytes, distance: Optional[float] = None) -> DecryptionResult:
        dec = xor_bytes(data, key)
        char_score = score_string(dec)
        word_score = score_words(dec, self.words) if self.words else 0.0
        return DecryptionResult(
            key_length=len(key), key=key, decrypted=dec,
            formatted=printable_preview(dec), score=word_score - char_score,
            char_score=char_score, word_score=word_score, keysize_distance=distance
        )

    def try_key_length(self, data: bytes, size: int, distance: Optional[float] = None) -> List[DecryptionResult]:
        results: Dict[bytes, DecryptionResult] = {}
        for key in self._candidate_keys(data, size):
            if key in results:
                continue
            try:
                res = self.score_candidate(data, key, distance)
            except (InvalidKey, UnderlyingReadFailure) as e:
                self._say(f"[!] Skipping key {key!r}: {e}", Term.RED)
                continue
            results[key] = res
        ranked = sorted(results.values(), key=lambda r: r.score, reverse=True)
        return ranked[:self.top_results]

    def solve_bytes(self, data: bytes, max_workers: Optional[int] = None) -> List[DecryptionResult]:
        if max_workers is None:
            max_workers = max(1, os.cpu_count() or 1)

        table = self.keysize_table(data)
        cands = best_keysizes(table, self.top_keysizes)
        self._say(f"[*] Testing key lengths: {cands}")

        found: List[DecryptionResult] = []
        best_score = float('-inf')
        t0 = time.time()

        def _job(m):
            return self.try_key_length(data, m, table.get(m))

        try:
            with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as ex:
                futs = [ex.submit(_job, m) for m in cands]
                for fut in concurrent.futures.as_completed(futs):
                    for res in fut.result():
                        found.append(res)
                        if res.score > best_score:
                            best_score = res.score
                            self._say(f"[*] New best m={res.key_length} key={res.key!r} score={res.score:.4f}", Term.YELLOW)
        except KeyboardInterrupt:
            print(f"\n{Term.RED}[!] Interrupted. Returning best-so-far if any.{Term.END}")

        if not found:
            raise RuntimeError("No solution found")
        found.sort(key=lambda r: r.score, reverse=True)
        self._say(f"[+] Done in {time.time()-t0:.2f}s | best key={found[0].key!r} score={found[0].score:.4f}", Term.GREEN)
        return found[:self.top_results]

# ---------------------------
# CLI
# ---------------------------
def _read_input(args, ap) -> bytes:
    if args.input:
        try:
            raw = Path(args.input).read_bytes()
        except OSError as e:
            ap.error(f"cannot read {args.input}: {e}")
    elif args.text is not None:
        raw = args.text.encode("utf-8")
    else:
        ap.error("Either --input FILE or --text STRING must be provided.")
    try:
        return decode_input(raw, args.format)
    except ValueError as e:
        ap.error(str(e))

def _read_key(args, ap) -> bytes:
    try:
        if args.key_hex:
            return decode_input(args.key_hex, "hex")
        if args.key:
            return args.key.encode("utf-8")
    except ValueError as e:
        ap.error(str(e))
    ap.error("--mode encrypt needs --key or --key-hex")

def main(argv: Optional[List[str]] = None):
    ap = argparse.ArgumentParser(description="Repeated-key XOR solver (keysize ranking + key search + scoring)")
    ap.add_argument("--mode", choices=["solve", "encrypt", "keysizes", "score"], default="solve")
    ap.add_argument("--input", "-i", help="Input file")
    ap.add_argument("--text", "-t", help="Input given directly on the command line")
    ap.add_argument("--format", choices=["raw", "hex", "base64"], default="raw", help="Encoding of the input")
    ap.add_argument("--out", help="Write resulting bytes (encrypt) or best plaintext (solve) to this file")
    ap.add_argument("--output-format", choices=["raw", "hex", "base64"], default="hex",
                    help="Encoding of encrypted output on stdout")

    # Encryption
    ap.add_argument("--key", help="Key for --mode encrypt")
    ap.add_argument("--key-hex", help="Hex encoded key for --mode encrypt")

    # Solver parameters
    ap.add_argument("--wordlist", "-w", default=os.environ.get("WORDLIST_PATH"), help="Word list (text or JSON)")
    ap.add_argument("--max-keysize", type=int, default=40, help="Largest keysize to consider")
    ap.add_argument("--top-keysizes", type=int, default=3, help="How many keysizes to attack")
    ap.add_argument("--sample-pairs", type=int, default=DEFAULT_SAMPLE_PAIRS,
                    help="Chunk pairs compared per keysize (0 = all)")
    ap.add_argument("--strategy", choices=list(STRATEGIES), default="auto", help="Key candidate source")
    ap.add_argument("--max-brute", type=int, default=3, help="Longest key to brute force")
    ap.add_argument("--allow-unprintable", action="store_true", help="Try every key byte, even ones that decode to control bytes")
    ap.add_argument("--workers", type=int, default=None, help="Thread pool size")
    ap.add_argument("--top", type=int, default=5, help="Number of results to show")
    args = ap.parse_args(argv)

    data = _read_input(args, ap)

    # Mode 1: encrypt / decrypt with a known key
    if args.mode == "encrypt":
        key = _read_key(args, ap)
        try:
            out = xor_bytes(data, key, on_key_reuse=lambda: print(
                f"{Term.YELLOW}[*] Key reused to cover the input; use a longer key to be secure.{Term.END}",
                file=sys.stderr))
        except InvalidKey as e:
            ap.error(str(e))
        if args.out:
            Path(args.out).write_bytes(out)
            print(f"{Term.GREEN}[+] Wrote {len(out)} bytes to {args.out}{Term.END}")
        elif args.output_format == "raw":
            sys.stdout.flush()
            sys.stdout.buffer.write(out)
            sys.stdout.buffer.flush()
        else:
            print(encode_output(out, args.output_format))
        return 0

    # Mode 2: score a text
    if args.mode == "score":
        solver = XorSolver(args.wordlist)
        text = data.decode("latin-1")
        char_score = score_string(text)
        word_score = score_words(text, solver.words)
        print(f"chars={char_score:.4f} words={word_score:.4f} combined={char_score + word_score:.4f} "
              f"fitness={word_score - char_score:.4f}")
        return 0

    sample_pairs = args.sample_pairs if args.sample_pairs > 0 else None
    solver = XorSolver(
        args.wordlist,
        max_keysize=args.max_keysize, top_keysizes=args.top_keysizes,
        sample_pairs=sample_pairs, strategy=args.strategy,
        max_brute_length=args.max_brute, printable_only=not args.allow_unprintable,
        top_results=args.top, verbose=True
    )

    # Mode 3: keysize table only
    if args.mode == "keysizes":
        table = solver.keysize_table(data)
        if not table:
            print(f"{Term.RED}[!] Input too short to estimate any keysize{Term.END}")
            return 1
        for size, dist in sorted(table.items(), key=lambda kv: (kv[1], kv[0]))[:args.top]:
            print(f"keysize={size:3d} distance={dist:.4f}")
        return 0

    # Mode 4: solve
    print(f"{Term.BLUE}Loaded {len(data)} bytes, {len(solver.words)} dictionary words.{Term.END}")
    try:
        results = solver.solve_bytes(data, max_workers=args.workers)
    except RuntimeError as e:
        print(f"{Term.RED}[!] {e}{Term.END}")
        return 1
    for rank, res in enumerate(results, 1):
        print(f"\n{Term.BOLD}=== #{rank} KeyLen={res.key_length} Key={res.key!r} ({res.key.hex()}) ==={Term.END}")
        print(f"Score={res.score:.4f} Chars={res.char_score:.4f} Words={res.word_score:.4f}")
        print(res.formatted[:1200] + ("..." if len(res.formatted) > 1200 else ""))
    if args.out:
        Path(args.out).write_bytes(results[0].decrypted)
        print(f"{Term.GREEN}[+] Wrote best plaintext to {args.out}{Term.END}")
    return 0

if __name__ == "__main__":
    sys.exit(main())
