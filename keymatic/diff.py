# Script: diff.py

# Function: fncMissingFrom
# Purpose : Items of `a` that are not in `b`, in `a`'s order, each once.
def fncMissingFrom(a, b) -> list[str]:
    other = set(b)
    out: list[str] = []
    seen: set[str] = set()
    for item in a:
        if item not in other and item not in seen:
            seen.add(item)
            out.append(item)
    return out


# Function: fncArrayDiff
# Purpose : Symmetric difference of two username/key collections.
# Notes   : Items unique to `a` first (a's order), then items unique to `b` (b's order),
#           so the same inputs always give the same list.
def fncArrayDiff(a, b) -> list[str]:
    a, b = list(a), list(b)
    return fncMissingFrom(a, b) + fncMissingFrom(b, a)
