"""Search ranking components.

Contents
- ``query_expansion``: tokenizer, synonyms and phrase rules
- ``fusion``: per-mode score fusion, inclusion rules and total ordering
- ``pruning``: semantic tail pruning
"""
