"""LZH decompression (adaptive Huffman coded LZSS).

The bit stream layout is the classic LZHUF one: literals and match lengths
share one adaptively coded alphabet of 314 symbols, match positions are sent
as a statically coded upper 6 bits followed by 6 raw low bits.
"""
import logging
from typing import List, Union

from ..chunks.base import CompressedSizeMismatchError
from ..chunks.stream import ByteStream

logger = logging.getLogger(__name__)

BUFFER_SIZE = 4096           # ring buffer size
LOOK_AHEAD = 60              # longest match
THRESHOLD = 2                # matches longer than this are coded as references
N_CHAR = 256 - THRESHOLD + LOOK_AHEAD   # 314 symbols
TABLE_SIZE = N_CHAR * 2 - 1             # 627 tree nodes
ROOT = TABLE_SIZE - 1
MAX_FREQ = 0x8000

# Upper 6 bits of a match position, indexed by the first coded byte
D_CODE = bytes(
    [0x00] * 32 + [0x01] * 16 + [0x02] * 16 + [0x03] * 16
    + [c for c in range(0x04, 0x0C) for _ in range(8)]
    + [c for c in range(0x0C, 0x18) for _ in range(4)]
    + [c for c in range(0x18, 0x30) for _ in range(2)]
    + list(range(0x30, 0x40))
)


def d_len(byte: int) -> int:
    """Total bit length of a position code starting with this byte."""
    if byte < 32:
        return 3
    if byte < 80:
        return 4
    if byte < 144:
        return 5
    if byte < 192:
        return 6
    if byte < 240:
        return 7
    return 8


class LzhDecoder:
    """Stateful LZH decoder. State is reset at the start of every unpack."""

    def __init__(self, max_overrun: int = 2):
        self.max_overrun = max_overrun
        self.freq: List[int] = []
        self.prnt: List[int] = []
        self.son: List[int] = []
        self._stream = None
        self._getbuf = 0
        self._getlen = 0
        self._overrun = 0

    def _start_huff(self) -> None:
        self.freq = [0] * (TABLE_SIZE + 1)
        self.prnt = [0] * (TABLE_SIZE + N_CHAR)
        self.son = [0] * TABLE_SIZE
        freq, prnt, son = self.freq, self.prnt, self.son

        for i in range(N_CHAR):
            freq[i] = 1
            son[i] = i + TABLE_SIZE
            prnt[i + TABLE_SIZE] = i
        i = 0
        for j in range(N_CHAR, ROOT + 1):
            freq[j] = freq[i] + freq[i + 1]
            son[j] = i
            prnt[i] = prnt[i + 1] = j
            i += 2
        freq[TABLE_SIZE] = 0xFFFF
        prnt[ROOT] = 0

    def _reconst(self) -> None:
        """Halve all leaf frequencies and rebuild the tree."""
        freq, prnt, son = self.freq, self.prnt, self.son

        j = 0
        for i in range(TABLE_SIZE):
            if son[i] >= TABLE_SIZE:
                freq[j] = (freq[i] + 1) >> 1
                son[j] = son[i]
                j += 1

        i = 0
        for j in range(N_CHAR, TABLE_SIZE):
            f = freq[i] + freq[i + 1]
            k = j - 1
            while f < freq[k]:
                k -= 1
            k += 1
            freq[k + 1:j + 1] = freq[k:j]
            freq[k] = f
            son[k + 1:j + 1] = son[k:j]
            son[k] = i
            i += 2

        for i in range(TABLE_SIZE):
            k = son[i]
            if k >= TABLE_SIZE:
                prnt[k] = i
            else:
                prnt[k] = prnt[k + 1] = i

    def _update(self, c: int) -> None:
        freq, prnt, son = self.freq, self.prnt, self.son
        if freq[ROOT] == MAX_FREQ:
            self._reconst()

        c = prnt[c + TABLE_SIZE]
        while True:
            freq[c] += 1
            k = freq[c]

            # Keep the frequency list ordered by swapping c with the last
            # node of lower frequency
            l = c + 1
            if k > freq[l]:
                while k > freq[l]:
                    l += 1
                l -= 1
                freq[c] = freq[l]
                freq[l] = k

                i = son[c]
                prnt[i] = l
                if i < TABLE_SIZE:
                    prnt[i + 1] = l

                j = son[l]
                son[l] = i

                prnt[j] = c
                if j < TABLE_SIZE:
                    prnt[j + 1] = c
                son[c] = j

                c = l

            c = prnt[c]
            if c == 0:
                break

    def _fill(self) -> None:
        while self._getlen <= 8:
            if self._stream.is_eof():
                self._overrun += 1
                if self._overrun > self.max_overrun:
                    raise CompressedSizeMismatchError(
                        f"Compressed data exhausted ({self._overrun} bytes past end)"
                    )
                byte = 0
            else:
                byte = self._stream.read_u8()
            self._getbuf = (self._getbuf | (byte << (8 - self._getlen))) & 0xFFFF
            self._getlen += 8

    def _get_bit(self) -> int:
        self._fill()
        bit = (self._getbuf >> 15) & 1
        self._getbuf = (self._getbuf << 1) & 0xFFFF
        self._getlen -= 1
        return bit

    def _get_byte(self) -> int:
        self._fill()
        byte = (self._getbuf >> 8) & 0xFF
        self._getbuf = (self._getbuf << 8) & 0xFFFF
        self._getlen -= 8
        return byte

    def _decode_char(self) -> int:
        son = self.son
        c = son[ROOT]
        while c < TABLE_SIZE:
            c += self._get_bit()
            c = son[c]
        c -= TABLE_SIZE
        self._update(c)
        return c

    def _decode_position(self) -> int:
        i = self._get_byte()
        c = D_CODE[i] << 6
        for _ in range(d_len(i) - 2):
            i = (i << 1) + self._get_bit()
        return c | (i & 0x3F)

    def unpack(self, stream: ByteStream, text_size: int) -> bytes:
        """Decompress exactly ``text_size`` bytes from the stream.

        Raises:
            CompressedSizeMismatchError: If the data does not decode to
                ``text_size`` bytes
        """
        self._stream = stream
        self._getbuf = 0
        self._getlen = 0
        self._overrun = 0
        self._start_huff()

        text_buf = bytearray(BUFFER_SIZE)
        mask = BUFFER_SIZE - 1
        r = BUFFER_SIZE - LOOK_AHEAD
        out = bytearray()

        try:
            while len(out) < text_size:
                c = self._decode_char()
                if c < 256:
                    out.append(c)
                    text_buf[r] = c
                    r = (r + 1) & mask
                    continue

                i = (r - self._decode_position() - 1) & mask
                length = c - 255 + THRESHOLD
                if len(out) + length > text_size:
                    raise CompressedSizeMismatchError(
                        f"Match of {length} bytes at output offset {len(out)} "
                        f"(compressed offset {self._stream.position}) "
                        f"exceeds expected size {text_size}"
                    )
                for k in range(length):
                    c = text_buf[(i + k) & mask]
                    out.append(c)
                    text_buf[r] = c
                    r = (r + 1) & mask
        finally:
            self._stream = None

        logger.debug(f"LZH unpacked {len(out)} bytes")
        return bytes(out)


def lzh_unpack(data: Union[bytes, ByteStream], text_size: int, max_overrun: int = 2) -> bytes:
    """Decompress an LZH payload held in memory."""
    stream = data if isinstance(data, ByteStream) else ByteStream(bytes(data))
    return LzhDecoder(max_overrun).unpack(stream, text_size)
