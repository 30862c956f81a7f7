"""
Vocabulary

Bidirectional mapping between surface tokens (words and constituent labels)
and dense integer ids.

The vocabulary is open while the training corpus is read (new tokens are
added) and frozen before prediction, after which unknown tokens map to the
UNK entry.
"""

from typing import Dict, Iterable, List


UNK_TOKEN = "UNK"


class Vocabulary:
    """
    Token <-> id table with an explicit unknown entry.

    Attributes:
        unk_token: Surface form of the unknown entry (always id 0)
        frozen: Whether new tokens are rejected (mapped to UNK)
    """

    def __init__(self, tokens: Iterable[str] = (), unk_token: str = UNK_TOKEN):
        self.unk_token = unk_token
        self.frozen = False
        self._token_to_id: Dict[str, int] = {}
        self._id_to_token: List[str] = []

        self._add(unk_token)
        for token in tokens:
            self.convert(token)

    def _add(self, token: str) -> int:
        token_id = len(self._id_to_token)
        self._token_to_id[token] = token_id
        self._id_to_token.append(token)
        return token_id

    @property
    def unk_id(self) -> int:
        return self._token_to_id[self.unk_token]

    def convert(self, token: str) -> int:
        """
        Get the id of a token, adding it if the vocabulary is still open.

        Args:
            token: Surface token

        Returns:
            Token id (UNK id for unseen tokens once frozen)
        """
        token_id = self._token_to_id.get(token)
        if token_id is not None:
            return token_id
        if self.frozen:
            return self.unk_id
        return self._add(token)

    def lookup(self, token_id: int) -> str:
        """Get the surface token for an id."""
        if token_id < 0 or token_id >= len(self._id_to_token):
            raise KeyError(f"Unknown token id: {token_id}")
        return self._id_to_token[token_id]

    def freeze(self):
        """Stop growing; unseen tokens map to UNK from now on."""
        self.frozen = True

    def to_list(self) -> List[str]:
        """Tokens ordered by id (for checkpoints)."""
        return list(self._id_to_token)

    @classmethod
    def from_list(cls, tokens: List[str], frozen: bool = True) -> 'Vocabulary':
        """
        Rebuild a vocabulary from an id-ordered token list.

        The first token is the unknown entry.
        """
        if not tokens:
            raise ValueError("Token list must contain at least the unknown entry")
        vocab = cls(unk_token=tokens[0])
        for token in tokens[1:]:
            if token in vocab._token_to_id:
                raise ValueError(f"Duplicate token in vocabulary: {token!r}")
            vocab._add(token)
        vocab.frozen = frozen
        return vocab

    def __len__(self) -> int:
        return len(self._id_to_token)

    def __contains__(self, token: str) -> bool:
        return token in self._token_to_id

    def __repr__(self) -> str:
        return f"Vocabulary(size={len(self)}, frozen={self.frozen})"
