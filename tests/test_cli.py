import io
import os
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout

from xorsolver.solver import main
from xorsolver.utils import xor_bytes

PLAIN = (b"Burning 'em, if you ain't quick and nimble I go crazy when I hear a cymbal. "
         b"The key to this cipher is reused over and over across the whole of the text.")


def run_bytes(*argv):
    raw = io.BytesIO()
    out = io.TextIOWrapper(raw, encoding="utf-8", write_through=True)
    err = io.StringIO()
    with redirect_stdout(out), redirect_stderr(err):
        code = main(list(argv))
    out.flush()
    return code, raw.getvalue(), err.getvalue()


def run(*argv):
    code, out, err = run_bytes(*argv)
    return code, out.decode("utf-8", errors="replace"), err


class CommandLine(unittest.TestCase):
    def testEncrypt(self):
        code, out, err = run("--mode", "encrypt", "--text", "hello world", "--key", "ICE")
        self.assertEqual(code, 0)
        self.assertEqual(out.strip(), xor_bytes(b"hello world", b"ICE").hex())
        self.assertIn("Key reused", err)

    def testEncryptDecodesHexInput(self):
        cipher = xor_bytes(PLAIN, b"ICE").hex()
        code, out, _ = run_bytes("--mode", "encrypt", "--text", cipher, "--format", "hex",
                                 "--key-hex", "494345", "--output-format", "raw")
        self.assertEqual(code, 0)
        self.assertEqual(out, PLAIN)

    def testRawOutputIsByteExact(self):
        data = bytes(range(256))
        cipher = xor_bytes(data, b"ICE").hex()
        code, out, _ = run_bytes("--mode", "encrypt", "--text", cipher, "--format", "hex",
                                 "--key-hex", "494345", "--output-format", "raw")
        self.assertEqual(code, 0)
        self.assertEqual(out, data)

    def testEncryptWritesFile(self):
        with tempfile.TemporaryDirectory() as tmp:
            src = os.path.join(tmp, "plain.txt")
            dst = os.path.join(tmp, "cipher.bin")
            with open(src, "wb") as f:
                f.write(PLAIN)
            code, _, _ = run("--mode", "encrypt", "-i", src, "--key", "ICE", "--out", dst)
            self.assertEqual(code, 0)
            with open(dst, "rb") as f:
                self.assertEqual(f.read(), xor_bytes(PLAIN, b"ICE"))

    def testKeysizes(self):
        cipher = xor_bytes(PLAIN, b"ICE").hex()
        code, out, _ = run("--mode", "keysizes", "--text", cipher, "--format", "hex",
                           "--max-keysize", "10", "--top", "4")
        self.assertEqual(code, 0)
        self.assertEqual(len([l for l in out.splitlines() if l.startswith("keysize=")]), 4)

    def testScore(self):
        code, out, _ = run("--mode", "score", "--text", "hello world")
        self.assertEqual(code, 0)
        self.assertIn("combined=", out)
        self.assertIn("fitness=", out)

    def testSolveTooShort(self):
        code, out, _ = run("--mode", "solve", "--text", "x")
        self.assertEqual(code, 1)
        self.assertIn("No solution found", out)

    def testMissingInput(self):
        with self.assertRaises(SystemExit):
            run("--mode", "encrypt", "--key", "k")

    def testBadHex(self):
        with self.assertRaises(SystemExit):
            run("--mode", "keysizes", "--text", "zz", "--format", "hex")

    def testEncryptNeedsKey(self):
        with self.assertRaises(SystemExit):
            run("--mode", "encrypt", "--text", "abc")


if __name__ == "__main__":
    unittest.main()
