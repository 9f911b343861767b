"""
graphforge.nlp — Text-Facing Building Blocks
=============================================
Components:
    - vocabulary.py          — term ↔ id mapping (vocab.txt)
    - tokenizer.py           — WordPiece tokenizer adapter (HF tokenizers)
    - word_embeddings.py     — in-memory word lookup table
    - stacked_embeddings.py  — concatenation of several word encoders
"""

from graphforge.nlp.vocabulary import Vocabulary
from graphforge.nlp.tokenizer import Token, WordPieceTokenizer
from graphforge.nlp.word_embeddings import WordEmbeddings
from graphforge.nlp.stacked_embeddings import StackedEmbeddings, WordsEncoder
