#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import os
import time
from typing import Any, Dict, List, Optional

from flask import Flask, request, jsonify

from .solver import XorSolver, STRATEGIES
from .utils import (
    DEFAULT_SAMPLE_PAIRS, InvalidKey, DecryptionResult, decode_input, encode_output,
    load_word_list, score_string, score_words, xor_bytes
)


def _available_cpus() -> int:
    try:
        return len(os.sched_getaffinity(0))
    except (AttributeError, OSError):
        return max(1, os.cpu_count() or 1)


def _thread_budget() -> int:
    cap = int(os.environ.get("SOLVER_THREADS_MAX", "2"))
    return max(1, min(_available_cpus(), cap))


# Upper bounds on request-controlled work.
MAX_KEYSIZE = 100
MAX_BRUTE = 3
MAX_TOP_KEYSIZES = 10
MAX_TOP_RESULTS = 50
MAX_SAMPLE_PAIRS = 10000


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError("request body must be a JSON object")
    return data


def _str(data: Dict[str, Any], name: str, default: str = "") -> str:
    value = data.get(name, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    return value


def _int(data: Dict[str, Any], name: str, default: int, lo: int, hi: int) -> int:
    value = data.get(name, default)
    if value is None or value == "":
        value = default
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValueError(f"{name} must be an integer")
    try:
        n = int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer") from None
    if not lo <= n <= hi:
        raise ValueError(f"{name} must be between {lo} and {hi}")
    return n


def _sample_pairs(data: Dict[str, Any]) -> Optional[int]:
    n = _int(data, "sample_pairs", DEFAULT_SAMPLE_PAIRS, 0, MAX_SAMPLE_PAIRS)
    return n if n > 0 else None


def _result_json(res: DecryptionResult) -> Dict[str, Any]:
    return {
        "key_length": res.key_length,
        "key_hex": res.key.hex(),
        "key": res.key.decode("latin-1"),
        "score": res.score,
        "char_score": res.char_score,
        "word_score": res.word_score,
        "keysize_distance": res.keysize_distance,
        "plaintext": res.formatted,
        "plaintext_hex": res.decrypted.hex(),
    }


def create_app(words: Optional[List[str]] = None) -> Flask:
    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.environ.get("FLASK_SECRET", os.urandom(24).hex())
    app.config["WORDLIST_PATH"] = os.environ.get("WORDLIST_PATH")
    if words is None and app.config["WORDLIST_PATH"]:
        words = load_word_list(app.config["WORDLIST_PATH"])
    app.config["WORDS"] = words

    def _solver(**kw) -> XorSolver:
        return XorSolver(words=app.config["WORDS"], **kw)

    @app.errorhandler(ValueError)
    def bad_input(e):
        return jsonify({"error": str(e)}), 400

    @app.get("/")
    def index():
        defaults = {
            "format": "hex",
            "max_keysize": 40,
            "top_keysizes": 3,
            "sample_pairs": DEFAULT_SAMPLE_PAIRS,
            "strategy": "auto",
            "max_brute": 3,
            "top": 5,
        }
        return jsonify({
            "endpoints": ["/api/solve", "/api/encrypt", "/api/keysizes", "/api/score"],
            "strategies": list(STRATEGIES),
            "defaults": defaults,
        })

    @app.post("/api/solve")
    def api_solve():
        data = _json_body()
        text = _str(data, "ciphertext")
        if not text.strip():
            return jsonify({"error": "ciphertext required"}), 400
        ciphertext = decode_input(text, _str(data, "format", "hex"))

        params = {
            "max_keysize": _int(data, "max_keysize", 40, 1, MAX_KEYSIZE),
            "top_keysizes": _int(data, "top_keysizes", 3, 1, MAX_TOP_KEYSIZES),
            "sample_pairs": _sample_pairs(data),
            "strategy": _str(data, "strategy", "auto"),
            "max_brute_length": _int(data, "max_brute", 3, 0, MAX_BRUTE),
            "top_results": _int(data, "top", 5, 1, MAX_TOP_RESULTS),
        }
        solver = _solver(**params)

        workers = _thread_budget()
        t0 = time.time()
        try:
            results = solver.solve_bytes(ciphertext, max_workers=workers)
        except RuntimeError as e:
            return jsonify({"error": str(e)}), 422
        return jsonify({
            "params": {**params, "workers_used": workers, "elapsed": time.time() - t0},
            "results": [_result_json(r) for r in results],
        }), 200

    @app.post("/api/encrypt")
    def api_encrypt():
        data = _json_body()
        plaintext = decode_input(_str(data, "plaintext"), _str(data, "format", "raw"))
        key = decode_input(_str(data, "key"), _str(data, "key_format", "raw"))
        reused: List[bool] = []
        try:
            out = xor_bytes(plaintext, key, on_key_reuse=lambda: reused.append(True))
        except InvalidKey as e:
            return jsonify({"error": str(e)}), 400
        return jsonify({
            "ciphertext": encode_output(out, _str(data, "output_format", "hex")),
            "key_reused": bool(reused),
        }), 200

    @app.post("/api/keysizes")
    def api_keysizes():
        data = _json_body()
        ciphertext = decode_input(_str(data, "ciphertext"), _str(data, "format", "hex"))
        solver = _solver(max_keysize=_int(data, "max_keysize", 40, 1, MAX_KEYSIZE),
                         sample_pairs=_sample_pairs(data))
        table = solver.keysize_table(ciphertext)
        ranked = sorted(table.items(), key=lambda kv: (kv[1], kv[0]))
        return jsonify({"keysizes": [{"keysize": k, "distance": d} for k, d in ranked]}), 200

    @app.post("/api/score")
    def api_score():
        data = _json_body()
        text = _str(data, "text")
        words = _solver().words
        char_score = score_string(text)
        word_score = score_words(text, words)
        return jsonify({
            "char_score": char_score,
            "word_score": word_score,
            "score": char_score + word_score,
            "fitness": word_score - char_score,
        }), 200

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", "5000")), debug=True)
