"""
Longest Common Subsequence alignment.

Classic dynamic-programming LCS over two line sequences. The common
prefix and suffix are matched directly before the table is built, which
keeps the quadratic part small for typical edits.
"""

from collections.abc import Sequence


def longest_common_subsequence(a: Sequence[str], b: Sequence[str]) -> list[tuple[int, int]]:
    """
    Align two sequences.

    Args:
        a: Old sequence
        b: New sequence

    Returns:
        Matching index pairs ``(i, j)`` with ``a[i] == b[j]``, strictly
        increasing in both coordinates
    """
    n, m = len(a), len(b)

    prefix = 0
    while prefix < n and prefix < m and a[prefix] == b[prefix]:
        prefix += 1

    suffix = 0
    while (
        suffix < n - prefix
        and suffix < m - prefix
        and a[n - 1 - suffix] == b[m - 1 - suffix]
    ):
        suffix += 1

    head = [(i, i) for i in range(prefix)]
    tail = [(n - suffix + k, m - suffix + k) for k in range(suffix)]
    middle = _lcs_table_matches(a[prefix:n - suffix], b[prefix:m - suffix])

    return head + [(i + prefix, j + prefix) for i, j in middle] + tail


def _lcs_table_matches(a: Sequence[str], b: Sequence[str]) -> list[tuple[int, int]]:
    n, m = len(a), len(b)
    if n == 0 or m == 0:
        return []

    # dp[i][j] = LCS length of a[:i] and b[:j]
    dp = [[0] * (m + 1) for _ in range(n + 1)]
    for i in range(1, n + 1):
        row, prev = dp[i], dp[i - 1]
        ai = a[i - 1]
        for j in range(1, m + 1):
            if ai == b[j - 1]:
                row[j] = prev[j - 1] + 1
            else:
                row[j] = row[j - 1] if row[j - 1] > prev[j] else prev[j]

    matches = []
    i, j = n, m
    while i > 0 and j > 0:
        if a[i - 1] == b[j - 1]:
            matches.append((i - 1, j - 1))
            i -= 1
            j -= 1
        elif dp[i - 1][j] > dp[i][j - 1]:
            i -= 1
        else:
            j -= 1

    matches.reverse()
    return matches
