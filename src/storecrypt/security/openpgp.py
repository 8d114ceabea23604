"""Streaming OpenPGP (RFC 4880) symmetric-key messages.

Messages written here look like the output of ``gpg --symmetric
--cipher-algo AES256 --compress-algo none``:

- Symmetric-Key Encrypted Session Key packet (tag 3), version 4,
  iterated+salted SHA-256 S2K, no encrypted session key
- Symmetrically Encrypted Integrity Protected Data packet (tag 18),
  version 1, AES-256 CFB with a zero IV and the 18-byte random prefix
- inside it a binary Literal Data packet (tag 11) followed by the
  Modification Detection Code packet (tag 19, SHA-1)

Packets whose size is not known up front use partial body lengths, so
neither side ever holds more than one chunk in memory.

The reader is more liberal: it also accepts old-format packet headers,
marker packets, simple/salted S2K, other AES key sizes, SKESK packets
carrying an encrypted session key and compressed data packets.
"""

from __future__ import annotations

import bz2
import hashlib
import os
import struct
import zlib
from typing import BinaryIO, Callable, List, Optional, Tuple

from cryptography.hazmat.decrepit.ciphers.modes import CFB
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms

from storecrypt.core.exceptions import AuthenticationError, EncodingError, NotSupportedError


TAG_PKESK = 1
TAG_SKESK = 3
TAG_COMPRESSED = 8
TAG_SED = 9
TAG_MARKER = 10
TAG_LITERAL = 11
TAG_SEIPD = 18
TAG_MDC = 19

CIPHER_AES128 = 7
CIPHER_AES192 = 8
CIPHER_AES256 = 9
_CIPHER_KEY_SIZES = {CIPHER_AES128: 16, CIPHER_AES192: 24, CIPHER_AES256: 32}

HASH_MD5 = 1
HASH_SHA1 = 2
HASH_SHA256 = 8
HASH_SHA384 = 9
HASH_SHA512 = 10
HASH_SHA224 = 11
_HASH_NAMES = {
    HASH_MD5: "md5",
    HASH_SHA1: "sha1",
    HASH_SHA256: "sha256",
    HASH_SHA384: "sha384",
    HASH_SHA512: "sha512",
    HASH_SHA224: "sha224",
}

S2K_SIMPLE = 0
S2K_SALTED = 1
S2K_ITERATED = 3

COMPRESSION_NONE = 0
COMPRESSION_ZIP = 1
COMPRESSION_ZLIB = 2
COMPRESSION_BZIP2 = 3

BLOCK_SIZE = 16
DEFAULT_S2K_COUNT = 65536
PARTIAL_CHUNK_SIZE = 1 << 16
MDC_PACKET_LEN = 22
MDC_HEADER = bytes([0xC0 | TAG_MDC, 20])

PassphraseCallback = Callable[[], bytes]


# ----------------------------------------------------------------------
# S2K
# ----------------------------------------------------------------------

def decode_s2k_count(coded: int) -> int:
    return (16 + (coded & 15)) << ((coded >> 4) + 6)


def encode_s2k_count(count: int) -> int:
    """Return the smallest one-octet coded count covering ``count``."""
    for coded in range(256):
        if decode_s2k_count(coded) >= count:
            return coded
    return 255


def s2k_derive(passphrase: bytes, hash_algo: int, salt: bytes, count: Optional[int], key_len: int) -> bytes:
    """
    Run the OpenPGP string-to-key function.

    ``count`` is the number of octets to hash for iterated S2K; ``None``
    hashes ``salt || passphrase`` once (simple and salted S2K).
    """
    name = _HASH_NAMES.get(hash_algo)
    if name is None:
        raise NotSupportedError(f"unsupported S2K hash algorithm {hash_algo}", operation="s2k")

    data = bytes(salt) + bytes(passphrase)
    total = len(data) if count is None else max(count, len(data))
    block = data * max(1, PARTIAL_CHUNK_SIZE // len(data)) if data else b""

    out = b""
    preload = 0
    while len(out) < key_len:
        h = hashlib.new(name)
        h.update(b"\x00" * preload)
        remaining = total
        if block:
            while remaining >= len(block):
                h.update(block)
                remaining -= len(block)
            h.update(block[:remaining])
        out += h.digest()
        preload += 1
    return out[:key_len]


def _cipher_key_size(cipher_algo: int) -> int:
    size = _CIPHER_KEY_SIZES.get(cipher_algo)
    if size is None:
        raise NotSupportedError(f"unsupported symmetric cipher algorithm {cipher_algo}", operation="openpgp")
    return size


def _cfb(key: bytes) -> Cipher:
    return Cipher(algorithms.AES(key), CFB(bytes(BLOCK_SIZE)))


# ----------------------------------------------------------------------
# Packet framing
# ----------------------------------------------------------------------

def _encode_length(length: int) -> bytes:
    if length < 192:
        return bytes([length])
    if length < 8384:
        length -= 192
        return bytes([(length >> 8) + 192, length & 0xFF])
    return b"\xff" + struct.pack(">I", length)


def _packet(tag: int, body: bytes) -> bytes:
    return bytes([0xC0 | tag]) + _encode_length(len(body)) + body


def _read_exact(stream, n: int) -> bytes:
    data = stream.read(n)
    if len(data) != n:
        raise EncodingError("truncated packet header", operation="openpgp")
    return data


def _read_new_length(stream) -> Tuple[int, bool]:
    o1 = _read_exact(stream, 1)[0]
    if o1 < 192:
        return o1, False
    if o1 < 224:
        o2 = _read_exact(stream, 1)[0]
        return ((o1 - 192) << 8) + o2 + 192, False
    if o1 == 255:
        return struct.unpack(">I", _read_exact(stream, 4))[0], False
    return 1 << (o1 & 0x1F), True


class PacketBody:
    """Reads one packet body, following partial body length chunks."""

    def __init__(self, stream, length: Optional[int], partial: bool):
        self._stream = stream
        # None means the body runs until the end of the stream
        self._remaining = length
        self._partial = partial

    def read(self, n: int = -1) -> bytes:
        out = bytearray()
        while n < 0 or len(out) < n:
            if self._remaining is None:
                chunk = self._stream.read(PARTIAL_CHUNK_SIZE if n < 0 else n - len(out))
                if not chunk:
                    break
                out += chunk
                continue
            if self._remaining == 0:
                if not self._partial:
                    break
                self._remaining, self._partial = _read_new_length(self._stream)
                continue
            want = self._remaining if n < 0 else min(self._remaining, n - len(out))
            chunk = self._stream.read(want)
            if not chunk:
                raise EncodingError("truncated packet body", operation="openpgp")
            out += chunk
            self._remaining -= len(chunk)
        return bytes(out)

    def drain(self) -> None:
        while self.read(PARTIAL_CHUNK_SIZE):
            pass


def read_packet(stream) -> Optional[Tuple[int, PacketBody]]:
    """Read the next packet header; returns ``None`` at a clean end of stream."""
    first = stream.read(1)
    if not first:
        return None
    octet = first[0]
    if not octet & 0x80:
        raise EncodingError("invalid packet header", operation="openpgp")

    if octet & 0x40:
        tag = octet & 0x3F
        length, partial = _read_new_length(stream)
        return tag, PacketBody(stream, length, partial)

    tag = (octet >> 2) & 0x0F
    length_type = octet & 0x03
    if length_type == 0:
        length = _read_exact(stream, 1)[0]
    elif length_type == 1:
        (length,) = struct.unpack(">H", _read_exact(stream, 2))
    elif length_type == 2:
        (length,) = struct.unpack(">I", _read_exact(stream, 4))
    else:
        length = None
    return tag, PacketBody(stream, length, False)


class _PartialBodyWriter:
    """Writes one packet whose total length is not known in advance."""

    def __init__(self, write: Callable[[bytes], object], tag: int, chunk_size: int = PARTIAL_CHUNK_SIZE):
        # partial chunks must be a power of two and the first one >= 512
        if chunk_size < 512 or chunk_size & (chunk_size - 1):
            raise ValueError("chunk_size must be a power of two >= 512")
        self._write = write
        self._chunk_size = chunk_size
        self._power = chunk_size.bit_length() - 1
        self._buf = bytearray()
        self._closed = False
        write(bytes([0xC0 | tag]))

    def write(self, data: bytes) -> None:
        self._buf += data
        while len(self._buf) > self._chunk_size:
            self._write(bytes([0xE0 | self._power]) + bytes(self._buf[: self._chunk_size]))
            del self._buf[: self._chunk_size]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._write(_encode_length(len(self._buf)) + bytes(self._buf))
        self._buf.clear()


# ----------------------------------------------------------------------
# Writer
# ----------------------------------------------------------------------

class SymmetricMessageWriter:
    """
    File-like writer producing a passphrase-encrypted OpenPGP message.

    ``close()`` must be called to emit the literal packet tail and the
    modification detection code; it does not close ``sink``.
    """

    def __init__(
        self,
        sink: BinaryIO,
        passphrase: bytes,
        cipher_algo: int = CIPHER_AES256,
        s2k_count: int = DEFAULT_S2K_COUNT,
        chunk_size: int = PARTIAL_CHUNK_SIZE,
    ):
        key_size = _cipher_key_size(cipher_algo)
        salt = os.urandom(8)
        coded_count = encode_s2k_count(s2k_count)
        key = s2k_derive(passphrase, HASH_SHA256, salt, decode_s2k_count(coded_count), key_size)

        skesk = bytes([4, cipher_algo, S2K_ITERATED, HASH_SHA256]) + salt + bytes([coded_count])
        sink.write(_packet(TAG_SKESK, skesk))

        self._outer = _PartialBodyWriter(sink.write, TAG_SEIPD, chunk_size)
        self._outer.write(b"\x01")
        self._encryptor = _cfb(key).encryptor()
        self._mdc = hashlib.sha1()

        prefix = os.urandom(BLOCK_SIZE)
        self._emit(prefix + prefix[-2:])

        self._literal = _PartialBodyWriter(self._emit, TAG_LITERAL, chunk_size)
        # binary format, empty file name, zero date
        self._literal.write(b"b\x00" + bytes(4))
        self._closed = False

    def _emit(self, data: bytes) -> None:
        self._mdc.update(data)
        self._outer.write(self._encryptor.update(data))

    def write(self, data: bytes) -> int:
        if self._closed:
            raise ValueError("write to closed message writer")
        self._literal.write(data)
        return len(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._literal.close()
        self._emit(MDC_HEADER)
        self._outer.write(self._encryptor.update(self._mdc.digest()) + self._encryptor.finalize())
        self._outer.close()

    def abort(self) -> None:
        """Stop writing without emitting a trailer; the output stays invalid."""
        self._closed = True

    def __enter__(self) -> "SymmetricMessageWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()


# ----------------------------------------------------------------------
# Reader
# ----------------------------------------------------------------------

class _SymmetricKeyPacket:
    def __init__(self, body: bytes):
        if len(body) < 4:
            raise EncodingError("truncated symmetric key packet", operation="openpgp")
        if body[0] != 4:
            raise NotSupportedError(f"unsupported symmetric key packet version {body[0]}", operation="openpgp")
        self.cipher_algo = body[1]
        s2k_type = body[2]
        self.hash_algo = body[3]
        self.count: Optional[int] = None

        if s2k_type == S2K_SIMPLE:
            self.salt, pos = b"", 4
        elif s2k_type == S2K_SALTED:
            self.salt, pos = body[4:12], 12
        elif s2k_type == S2K_ITERATED:
            if len(body) < 13:
                raise EncodingError("truncated symmetric key packet", operation="openpgp")
            self.salt, pos = body[4:12], 13
            self.count = decode_s2k_count(body[12])
        else:
            raise NotSupportedError(f"unsupported S2K type {s2k_type}", operation="openpgp")

        if len(body) < pos:
            raise EncodingError("truncated symmetric key packet", operation="openpgp")
        self.encrypted_key = body[pos:]

    def session_key(self, passphrase: bytes) -> Optional[Tuple[int, bytes]]:
        key = s2k_derive(passphrase, self.hash_algo, self.salt, self.count, _cipher_key_size(self.cipher_algo))
        if not self.encrypted_key:
            return self.cipher_algo, key

        decryptor = _cfb(key).decryptor()
        plain = decryptor.update(self.encrypted_key) + decryptor.finalize()
        algo, session = plain[0], plain[1:]
        if _CIPHER_KEY_SIZES.get(algo) != len(session):
            return None
        return algo, session


class _DecryptingReader:
    """Decrypts an SEIPD body, holding back the trailing MDC packet until EOF."""

    def __init__(self, body: PacketBody, decryptor, prefix: bytes):
        self._body = body
        self._decryptor = decryptor
        self._mdc = hashlib.sha1(prefix)
        self._pending = bytearray()
        self._eof = False

    def _fill(self, n: int) -> None:
        while not self._eof and len(self._pending) < n + MDC_PACKET_LEN:
            chunk = self._body.read(PARTIAL_CHUNK_SIZE)
            if not chunk:
                self._pending += self._decryptor.finalize()
                self._eof = True
                self._verify()
                break
            self._pending += self._decryptor.update(chunk)

    def _verify(self) -> None:
        if len(self._pending) < MDC_PACKET_LEN:
            raise AuthenticationError("message truncated before integrity check", operation="openpgp")
        trailer = bytes(self._pending[-MDC_PACKET_LEN:])
        del self._pending[-MDC_PACKET_LEN:]
        if trailer[:2] != MDC_HEADER:
            raise AuthenticationError("modification detection code missing", operation="openpgp")

        expected = self._mdc.copy()
        expected.update(self._pending)
        expected.update(MDC_HEADER)
        if expected.digest() != trailer[2:]:
            raise AuthenticationError("modification detection code mismatch", operation="openpgp")

    def read(self, n: int = -1) -> bytes:
        if n < 0:
            parts = []
            while True:
                chunk = self.read(PARTIAL_CHUNK_SIZE)
                if not chunk:
                    return b"".join(parts)
                parts.append(chunk)

        self._fill(n)
        if self._eof:
            available = len(self._pending)
        else:
            available = max(0, len(self._pending) - MDC_PACKET_LEN)
        k = min(n, available)
        out = bytes(self._pending[:k])
        del self._pending[:k]
        self._mdc.update(out)
        return out


class _DecompressingReader:
    def __init__(self, body: PacketBody, algo: int):
        self._body = body
        if algo == COMPRESSION_NONE:
            self._decompressor = None
        elif algo == COMPRESSION_ZIP:
            self._decompressor = zlib.decompressobj(-15)
        elif algo == COMPRESSION_ZLIB:
            self._decompressor = zlib.decompressobj()
        elif algo == COMPRESSION_BZIP2:
            self._decompressor = bz2.BZ2Decompressor()
        else:
            raise EncodingError(f"unsupported compression algorithm {algo}", operation="openpgp")
        self._buf = bytearray()
        self._eof = False

    def read(self, n: int = -1) -> bytes:
        if self._decompressor is None:
            return self._body.read(n)

        while not self._eof and (n < 0 or len(self._buf) < n):
            chunk = self._body.read(PARTIAL_CHUNK_SIZE)
            if not chunk:
                if hasattr(self._decompressor, "flush"):
                    self._buf += self._decompressor.flush()
                self._eof = True
                break
            try:
                self._buf += self._decompressor.decompress(chunk)
            except (zlib.error, OSError, EOFError) as e:
                raise EncodingError(f"corrupt compressed data: {e}", operation="openpgp") from e

        k = len(self._buf) if n < 0 else min(n, len(self._buf))
        out = bytes(self._buf[:k])
        del self._buf[:k]
        return out


class SymmetricMessageReader:
    """
    File-like reader over the literal data of a passphrase-encrypted message.

    ``passphrase_callback`` is called lazily once the key packets have been
    parsed, and again whenever the returned passphrase does not unlock the
    message. It is the callback's job to stop that loop by raising.

    Once ``read()`` returns ``b""`` the modification detection code has been
    verified. Data handed out before that point is unauthenticated.
    """

    def __init__(self, source: BinaryIO, passphrase_callback: PassphraseCallback):
        key_packets: List[_SymmetricKeyPacket] = []
        while True:
            packet = read_packet(source)
            if packet is None:
                raise EncodingError("no encrypted data packet found", operation="openpgp")
            tag, body = packet
            if tag == TAG_SKESK:
                key_packets.append(_SymmetricKeyPacket(body.read()))
            elif tag in (TAG_MARKER, TAG_PKESK):
                body.drain()
            elif tag == TAG_SEIPD:
                break
            elif tag == TAG_SED:
                raise NotSupportedError("messages without integrity protection are not supported", operation="openpgp")
            else:
                raise EncodingError(f"unexpected packet tag {tag}", operation="openpgp")

        if not key_packets:
            raise AuthenticationError("message is not encrypted with a passphrase", operation="openpgp")

        version = body.read(1)
        if version != b"\x01":
            raise NotSupportedError("unsupported integrity protected packet version", operation="openpgp")

        self.filename = b""
        self._plain = self._unlock(body, key_packets, passphrase_callback)
        try:
            self._literal = self._open_literal(self._plain)
        except EncodingError as e:
            raise AuthenticationError(f"failed to read decrypted message: {e.message}", operation="openpgp") from e
        self._done = False

    @staticmethod
    def _unlock(body: PacketBody, key_packets: List[_SymmetricKeyPacket], passphrase_callback: PassphraseCallback):
        header = body.read(BLOCK_SIZE + 2)
        if len(header) < BLOCK_SIZE + 2:
            raise AuthenticationError("message truncated before encrypted prefix", operation="openpgp")

        while True:
            passphrase = passphrase_callback()
            if isinstance(passphrase, str):
                passphrase = passphrase.encode("utf-8")
            for packet in key_packets:
                candidate = packet.session_key(passphrase)
                if candidate is None:
                    continue
                algo, key = candidate
                _cipher_key_size(algo)
                decryptor = _cfb(key).decryptor()
                prefix = decryptor.update(header)
                # quick check: last two random octets are repeated
                if prefix[BLOCK_SIZE - 2:BLOCK_SIZE] == prefix[BLOCK_SIZE:]:
                    return _DecryptingReader(body, decryptor, prefix)

    def _open_literal(self, stream) -> PacketBody:
        packet = read_packet(stream)
        if packet is None:
            raise EncodingError("encrypted message is empty", operation="openpgp")
        tag, body = packet

        if tag == TAG_COMPRESSED:
            algo = body.read(1)
            if not algo:
                raise EncodingError("truncated compressed data packet", operation="openpgp")
            return self._open_literal(_DecompressingReader(body, algo[0]))

        if tag != TAG_LITERAL:
            raise EncodingError(f"unexpected packet tag {tag} inside encrypted message", operation="openpgp")

        header = body.read(2)
        if len(header) != 2:
            raise EncodingError("truncated literal data packet", operation="openpgp")
        name = body.read(header[1])
        date = body.read(4)
        if len(name) != header[1] or len(date) != 4:
            raise EncodingError("truncated literal data packet", operation="openpgp")
        self.filename = name
        return body

    def _finish(self) -> None:
        self._done = True
        # drains any trailing packets and triggers the MDC check at EOF
        while self._plain.read(PARTIAL_CHUNK_SIZE):
            pass

    def read(self, n: int = -1) -> bytes:
        if self._done:
            return b""
        try:
            data = self._literal.read(n)
            if n < 0 or not data:
                self._finish()
            return data
        except EncodingError as e:
            raise AuthenticationError(f"failed to read decrypted message: {e.message}", operation="openpgp") from e
