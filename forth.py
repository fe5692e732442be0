#!/usr/bin/env python3
"""
forth.py - A tiny Forth evaluator over immutable state.

Integers, + - * /, DUP DROP SWAP OVER, and user words via : name ... ;

Architecture:
  - Tokenizer: next_token() scans one token off the front of the source and
    hands back the rest, so it can be restarted from any remainder
  - Evaluator: apply_token() folds one token into a State and returns a new
    State; nothing is ever mutated in place
  - While a definition is open the top of the stack is a Capture holding the
    raw tokens of the body; ; turns it into a dictionary entry
  - Dictionary bodies are resolved when installed: user words are replaced
    by their bodies and built-ins by PRIM tokens, so later redefinitions do
    not change words already built on them. Naming a word that does not
    exist yet is an error at definition time

Token kinds:
  INT    integer literal          value = int
  OP     binary operator          value = '+', '-', '*' or '/'
  WORD   identifier               value = name as written
  PRIM   resolved built-in        value = lower-case built-in name
  COLON  start of a definition    value = ':'
  SEMI   end of a definition      value = ';'
  EOF    end of input             value = None
"""

import sys
from collections import namedtuple
from types import MappingProxyType


class ForthError(Exception):
    pass


class StackUnderflow(ForthError):
    def __init__(self):
        super().__init__('stack underflow')


class DivisionByZero(ForthError):
    def __init__(self):
        super().__init__('division by zero')


class UnknownWord(ForthError):
    def __init__(self, word):
        self.word = word
        super().__init__(f'unknown word: {word}')


class InvalidWord(ForthError):
    """A definition whose name is not a word, e.g. `: 1 2 ;`."""
    def __init__(self, word):
        self.word = word
        super().__init__(f'invalid word: {word}')


class NestedDefinition(ForthError):
    def __init__(self):
        super().__init__('nested definition')


class UnterminatedDefinition(ForthError):
    def __init__(self):
        super().__init__('unterminated definition')


# ── Tokens ────────────────────────────────────────────────────────────────────

INT, OP, WORD, PRIM = 'INT', 'OP', 'WORD', 'PRIM'
COLON, SEMI, EOF = 'COLON', 'SEMI', 'EOF'

DIGITS    = '0123456789'
OPERATORS = '+-*/'


class Token(namedtuple('Token', 'kind value')):
    """A token. Its str is the source text it stands for."""
    def __str__(self):
        if self.kind == EOF:
            return ''
        return str(self.value)


class Capture(namedtuple('Capture', 'tokens')):
    """Body of a definition still being read; only ever on top of the stack."""
    def __repr__(self):
        return '<capture ' + ' '.join(str(t) for t in self.tokens) + '>'


# ── Tokenizer ─────────────────────────────────────────────────────────────────

def next_token(src: str, prev: str = ' ') -> tuple:
    """Return (token, rest) for the first token of src.

    Anything at or below U+0020 separates tokens. A run of digits ends at the
    first non-digit even without a separator, so '12ab' is INT 12, WORD ab.

    prev is the character just before src. A '-' starts a negative literal
    only at the start of a token, so '3-4' is INT 3, OP -, INT 4.
    """
    i, n = 0, len(src)
    while i < n and src[i] <= ' ':
        i += 1
    if i >= n:
        return Token(EOF, None), ''

    ch = src[i]
    signed = (ch == '-' and i + 1 < n and src[i+1] in DIGITS
              and (i > 0 or prev <= ' '))
    if ch in DIGITS or signed:
        j = i + 1
        while j < n and src[j] in DIGITS:
            j += 1
        return Token(INT, int(src[i:j])), src[j:]
    if ch in OPERATORS:
        return Token(OP, ch), src[i+1:]
    if ch == ':':
        return Token(COLON, ch), src[i+1:]
    if ch == ';':
        return Token(SEMI, ch), src[i+1:]

    j = i
    while j < n and src[j] > ' ':
        j += 1
    return Token(WORD, src[i:j]), src[j:]


def tokenize(src: str):
    """Yield the tokens of src lazily, stopping at end of input."""
    prev = ' '
    while True:
        tok, rest = next_token(src, prev)
        if tok.kind == EOF:
            return
        prev = src[len(src) - len(rest) - 1]
        src = rest
        yield tok


# ── State ─────────────────────────────────────────────────────────────────────

class State(namedtuple('State', 'stack dictionary defining')):
    """Interpreter state: stack (bottom first), word dictionary, defining flag.

    Treat as a value. Every operation returns a new State.
    """
    __slots__ = ()


def new() -> State:
    return State((), MappingProxyType({}), False)


# ── Arithmetic ────────────────────────────────────────────────────────────────

def _need(stack, n):
    if len(stack) < n:
        raise StackUnderflow()


def _div(a, b):
    if b == 0:
        raise DivisionByZero()
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q  # truncate toward zero


ARITH = {
    '+': lambda a, b: a + b,
    '-': lambda a, b: a - b,
    '*': lambda a, b: a * b,
    '/': _div,
}


def _binop(stack, op):
    _need(stack, 2)
    a, b = stack[-2], stack[-1]
    return stack[:-2] + (ARITH[op](a, b),)


# ── Built-in stack words ──────────────────────────────────────────────────────

def w_dup(s):
    _need(s, 1); return s + (s[-1],)

def w_drop(s):
    _need(s, 1); return s[:-1]

def w_swap(s):
    _need(s, 2); return s[:-2] + (s[-1], s[-2])

def w_over(s):
    _need(s, 2); return s + (s[-2],)


BUILTINS = {
    'dup':  w_dup,
    'drop': w_drop,
    'swap': w_swap,
    'over': w_over,
}


# ── Evaluator ─────────────────────────────────────────────────────────────────

def evaluate(state: State, src: str) -> State:
    """Run src against state and return the resulting state.

    The first ForthError stops evaluation and propagates; state itself is
    never touched, so the caller still holds the pre-failure state.
    """
    for tok in tokenize(src):
        state = apply_token(state, tok)
    return state


def apply_token(state: State, tok: Token) -> State:
    if state.defining:
        return _capture(state, tok)

    kind = tok.kind
    if kind == INT:
        return state._replace(stack=state.stack + (tok.value,))
    if kind == OP:
        return state._replace(stack=_binop(state.stack, tok.value))
    if kind == WORD:
        return _execute(state, tok.value)
    if kind == PRIM:
        return state._replace(stack=BUILTINS[tok.value](state.stack))
    if kind == COLON:
        return state._replace(stack=state.stack + (Capture(()),), defining=True)
    if kind == SEMI:
        raise UnknownWord(';')
    raise ForthError(f'Bad token: {tok!r}')


def _execute(state, word):
    name = word.lower()
    body = state.dictionary.get(name)
    if body is not None:
        for tok in body:
            state = apply_token(state, tok)
        return state
    fn = BUILTINS.get(name)
    if fn is None:
        raise UnknownWord(word)
    return state._replace(stack=fn(state.stack))


def _capture(state, tok):
    *below, cap = state.stack
    if tok.kind == COLON:
        raise NestedDefinition()
    if tok.kind != SEMI:
        return state._replace(stack=(*below, Capture(cap.tokens + (tok,))))

    if not cap.tokens:
        raise InvalidWord(str(tok))
    head, *body = cap.tokens
    if head.kind != WORD:
        raise InvalidWord(str(head))

    words = dict(state.dictionary)
    words[head.value.lower()] = _resolve(state.dictionary, body)
    return State(tuple(below), MappingProxyType(words), False)


def _resolve(dictionary, body):
    """Expand every WORD in body against the words defined right now."""
    out = []
    for tok in body:
        if tok.kind != WORD:
            out.append(tok)
            continue
        name = tok.value.lower()
        if name in dictionary:
            out.extend(dictionary[name])
        elif name in BUILTINS:
            out.append(Token(PRIM, name))
        else:
            raise UnknownWord(tok.value)
    return tuple(out)


def format_stack(state: State) -> str:
    if state.defining:
        raise UnterminatedDefinition()
    return ' '.join(str(v) for v in state.stack)


# ── Session ───────────────────────────────────────────────────────────────────

class Session:
    """One interactive user: keeps the latest good state between lines."""

    def __init__(self):
        self.state = new()

    @property
    def defining(self):
        return self.state.defining

    def interpret(self, line: str) -> str:
        try:
            state = evaluate(self.state, line)
        except ForthError as e:
            return f'Error: {e}'
        self.state = state
        if state.defining:
            return ''
        return ' '.join(filter(None, (format_stack(state), 'ok')))

    def reset(self):
        """Drop an open definition, keeping the stack under it."""
        if self.state.defining:
            self.state = self.state._replace(stack=self.state.stack[:-1],
                                             defining=False)


# ── Tests ─────────────────────────────────────────────────────────────────────

def run_tests():
    cases = [
        # Arithmetic
        ('1 2 +',                    '3'),
        ('3 4 -',                    '-1'),
        ('2 4 *',                    '8'),
        ('12 3 /',                   '4'),
        ('8 3 /',                    '2'),
        ('1 2 /',                    '0'),
        ('-7 2 /',                   '-3'),   # truncate, not floor
        ('7 -2 /',                   '-3'),
        ('1 2 3 4 - + +',            '2'),
        ('1 2 + 4 -',                '-1'),
        ('2 4 * 3 /',                '2'),
        ('5 0 /',                    DivisionByZero),
        ('1 +',                      StackUnderflow),
        ('+',                        StackUnderflow),

        # Stack words
        ('1 dup',                    '1 1'),
        ('1 2 dup',                  '1 2 2'),
        ('dup',                      StackUnderflow),
        ('1 drop',                   ''),
        ('1 2 drop',                 '1'),
        ('drop',                     StackUnderflow),
        ('1 2 swap',                 '2 1'),
        ('1 2 3 swap',               '1 3 2'),
        ('1 swap',                   StackUnderflow),
        ('1 2 over',                 '1 2 1'),
        ('1 2 3 over',               '1 2 3 2'),
        ('1 over',                   StackUnderflow),

        # User-defined words
        (': double dup + ; 5 double',          '10'),
        (': foo 5 ; foo foo +',                '10'),
        (': dup-twice dup dup ; 1 dup-twice',  '1 1 1'),
        (': countup 1 2 3 ; countup',          '1 2 3'),
        (': foo dup ; : foo dup dup ; 1 foo',  '1 1 1'),
        (': swap dup ; 1 swap',                '1 1'),
        (': foo 5 ; : bar foo ; : foo 6 ; bar foo', '5 6'),
        (': foo 10 ; : foo foo 1 + ; foo',     '11'),
        (': foo dup ; : dup 2 ; 1 foo',        '1 1'),
        (': foo bar ;',                        UnknownWord),
        (': foo foo ;',                        UnknownWord),
        ('3-4',                                '-1'),
        (': Foo 1 ; foo FOO',                  '1 1'),
        ('1 DUP Dup dup',                      '1 1 1 1'),
        (': 1 2 ;',                            InvalidWord),
        (': + 1 ;',                            InvalidWord),
        (': ;',                                InvalidWord),
        (': a : b ; ;',                        NestedDefinition),
        ('foo',                                UnknownWord),
        (';',                                  UnknownWord),
    ]

    passed = 0
    failures = []

    for src, expected in cases:
        try:
            got = format_stack(evaluate(new(), src))
        except ForthError as e:
            got = e
        if isinstance(expected, str):
            ok = got == expected
        else:
            ok = isinstance(got, expected)
        if ok:
            passed += 1
        else:
            failures.append((src, expected, got))

    for src, exp, got in failures:
        print(f'{src!r}: expected {exp!r}, got {got!r}')
    print(f'{passed} of {len(cases)} cases ok')
    return passed, len(cases)


# ── Interactive REPL ──────────────────────────────────────────────────────────

def repl():
    s = Session()
    print('Stack calculator with : definitions ;  (bye or Ctrl-D quits)')
    while True:
        try:
            line = input('  ... ' if s.defining else '> ')
        except EOFError:
            print()
            break
        except KeyboardInterrupt:
            if s.defining:
                print('\n(definition dropped)')
            else:
                print()
            s.reset()
            continue
        if line.strip().lower() == 'bye':
            break
        out = s.interpret(line)
        if out:
            print(out)


if __name__ == '__main__':
    if '--test' in sys.argv:
        p, t = run_tests()
        sys.exit(0 if p == t else 1)
    repl()
