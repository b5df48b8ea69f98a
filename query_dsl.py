# -*- coding: utf-8 -*-
"""
S-expression based DSL for route conditions.
Converts composable expressions to a predicate over a parsed message.
Field matches are case-insensitive substring tests.

Usage:
    Match(AnyOf(Froms("user@a.com", "user@b.com")))
    Match(AllOf(Froms("@mydomain"), Tos("inbox@")))
    Match(AllOf(Froms("@mydomain"), Not(AnyOf(Tos("@"), Ccs("@")))))
"""

import email_utils


def header_contains(msg, field, value):
    needle = value.lower()
    return any(needle in str(v).lower() for v in msg.get_all(field, []))


def body_contains(msg, value):
    return value.lower() in email_utils.get_decoded_email_body(msg).lower()


# Combinators
def or_combine(items):
    return lambda msg: any(item(msg) for item in items)


def and_combine(items):
    return lambda msg: all(item(msg) for item in items)


def not_combine(items):
    """True when none of the items match"""
    return lambda msg: not any(item(msg) for item in items)


# Field builders - take multiple values, return list of predicates
def From(*args):
    return [lambda msg, v=a: header_contains(msg, "From", v) for a in args]


def To(*args):
    return [lambda msg, v=a: header_contains(msg, "To", v) for a in args]


def Cc(*args):
    return [lambda msg, v=a: header_contains(msg, "Cc", v) for a in args]


def Subject(*args):
    return [lambda msg, v=a: header_contains(msg, "Subject", v) for a in args]


def Body(*args):
    return [lambda msg, v=a: body_contains(msg, v) for a in args]


# Plural aliases - clearer API
Froms = From
Tos = To
Ccs = Cc
SubjectPatterns = Subject
Bodies = Body


# Combinator builders - flatten args and wrap
def AnyOf(*args):
    """Combine matchers with OR - any must match"""
    return [or_combine([x for a in args for x in a])]


def AllOf(*args):
    """Combine matchers with AND - all must match"""
    return [and_combine([x for a in args for x in a])]


def Not(*args):
    """Negate matchers"""
    return [not_combine([x for a in args for x in a])]


# Final evaluation
def parseQuery(expr):
    """Collapse an expression list into a single predicate"""
    return expr[0] if len(expr) == 1 else or_combine(expr)


Match = parseQuery
