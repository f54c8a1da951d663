"""
Reference LZHUF encoder used to produce decoder test input

The adaptive Huffman tree here is kept apart from LzhDecoder: positions are
held in weight order with bisect lookups, and the rebuild inserts each new
parent into a plain list. A mistake in either tree then shows up as a
mismatch instead of cancelling out. Matching is a plain greedy search, which
is enough for test data.
"""
import bisect
from typing import List, Sequence, Tuple, Union

from darkstar_decoder.codec.lzh import BUFFER_SIZE, D_CODE, LOOK_AHEAD, THRESHOLD, d_len

SYMBOLS = 256 - THRESHOLD + LOOK_AHEAD
NODES = 2 * SYMBOLS - 1
TOP = NODES - 1
WEIGHT_LIMIT = 0x8000
MAX_DISTANCE = BUFFER_SIZE - LOOK_AHEAD

Token = Union[int, Tuple[int, int]]


def _position_codes():
    """Code byte and bit length of each upper 6 bit position value"""
    codes = {}
    for byte in range(256):
        upper = D_CODE[byte]
        if upper not in codes:
            codes[upper] = (byte, d_len(byte))
    return codes


P_CODES = _position_codes()


class AdaptiveTree:
    """Adaptive Huffman tree with positions sorted by weight

    ``child[pos]`` holds the position of the left child of an inner node, whose
    right child sits one position above it, or ``-1 - symbol`` for a leaf.
    """

    def __init__(self):
        self.weight = [1] * SYMBOLS
        self.child = [-1 - symbol for symbol in range(SYMBOLS)]
        for left in range(0, NODES - 1, 2):
            self.weight.append(self.weight[left] + self.weight[left + 1])
            self.child.append(left)
        self.rebuilds = 0
        self._link()

    def _link(self) -> None:
        self.parent = [-1] * NODES
        self.leaf = [-1] * SYMBOLS
        for pos in range(NODES):
            self._adopt(pos)

    def _adopt(self, pos: int) -> None:
        child = self.child[pos]
        if child < 0:
            self.leaf[-1 - child] = pos
        else:
            self.parent[child] = pos
            self.parent[child + 1] = pos

    def rebuild(self) -> None:
        """Halve leaf weights, rounding up, and pair them into a new tree"""
        weight = []
        child = []
        for w, c in zip(self.weight, self.child):
            if c < 0:
                weight.append((w + 1) // 2)
                child.append(c)
        for left in range(0, NODES - 1, 2):
            total = weight[left] + weight[left + 1]
            at = bisect.bisect_right(weight, total)
            weight.insert(at, total)
            child.insert(at, left)
        self.weight = weight
        self.child = child
        self.rebuilds += 1
        self._link()

    def code(self, symbol: int) -> List[int]:
        """Bits from the top of the tree down to the symbol's leaf"""
        bits = []
        pos = self.leaf[symbol]
        while pos != TOP:
            up = self.parent[pos]
            bits.append(pos - self.child[up])
            pos = up
        bits.reverse()
        return bits

    def update(self, symbol: int) -> None:
        if self.weight[TOP] == WEIGHT_LIMIT:
            self.rebuild()

        pos = self.leaf[symbol]
        while True:
            self.weight[pos] += 1
            last = bisect.bisect_left(self.weight, self.weight[pos], pos + 1) - 1
            if last != pos:
                self.weight[pos], self.weight[last] = self.weight[last], self.weight[pos]
                self.child[pos], self.child[last] = self.child[last], self.child[pos]
                self._adopt(pos)
                self._adopt(last)
                pos = last
            if pos == TOP:
                break
            pos = self.parent[pos]


class ReferenceLzhEncoder:

    def __init__(self):
        self.tree = AdaptiveTree()
        self._bits: List[int] = []

    def _put_bits(self, value: int, count: int) -> None:
        for n in range(count - 1, -1, -1):
            self._bits.append((value >> n) & 1)

    def _encode_symbol(self, symbol: int) -> None:
        self._bits.extend(self.tree.code(symbol))
        self.tree.update(symbol)

    def _encode_position(self, position: int) -> None:
        byte, length = P_CODES[position >> 6]
        self._put_bits(byte >> (8 - length), length)
        self._put_bits(position & 0x3F, 6)

    def _longest_match(self, data: bytes, pos: int):
        best_len = 0
        best_dist = 0
        limit = min(LOOK_AHEAD, len(data) - pos)
        for start in range(max(0, pos - MAX_DISTANCE), pos):
            length = 0
            while length < limit and data[start + length] == data[pos + length]:
                length += 1
            if length > best_len:
                best_len = length
                best_dist = pos - start
        return best_len, best_dist

    def tokenize(self, data: bytes, use_matches: bool = True) -> List[Token]:
        tokens: List[Token] = []
        pos = 0
        while pos < len(data):
            length, distance = self._longest_match(data, pos) if use_matches else (0, 0)
            if length > THRESHOLD:
                tokens.append((length, distance))
                pos += length
            else:
                tokens.append(data[pos])
                pos += 1
        return tokens

    def pack_tokens(self, tokens: Sequence[Token]) -> bytes:
        """Encode literals and ``(length, distance)`` matches"""
        self.tree = AdaptiveTree()
        self._bits = []
        for token in tokens:
            if isinstance(token, tuple):
                length, distance = token
                self._encode_symbol(255 - THRESHOLD + length)
                self._encode_position(distance - 1)
            else:
                self._encode_symbol(token)

        out = bytearray()
        for i in range(0, len(self._bits), 8):
            chunk = self._bits[i:i + 8]
            chunk += [0] * (8 - len(chunk))
            value = 0
            for bit in chunk:
                value = (value << 1) | bit
            out.append(value)
        return bytes(out)

    def pack(self, data: bytes, use_matches: bool = True) -> bytes:
        return self.pack_tokens(self.tokenize(data, use_matches))


def lzh_pack(data: bytes, use_matches: bool = True) -> bytes:
    return ReferenceLzhEncoder().pack(data, use_matches)


def lzh_pack_tokens(tokens: Sequence[Token]) -> bytes:
    return ReferenceLzhEncoder().pack_tokens(tokens)


def expand_tokens(tokens: Sequence[Token]) -> bytes:
    """Plain LZ77 expansion of a token list, without a ring buffer"""
    out = bytearray()
    for token in tokens:
        if isinstance(token, tuple):
            length, distance = token
            for _ in range(length):
                out.append(out[-distance])
        else:
            out.append(token)
    return bytes(out)
