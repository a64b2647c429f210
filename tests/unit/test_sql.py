"""
Unit tests for SQL template tokenizing, substitution and placeholder rewriting.
"""
import datetime
import decimal

import pytest
from dbwrap.exceptions import ArgumentError
from dbwrap.sql import TokenType, count_placeholders, quote_identifier
from dbwrap.sql import render_literal, standardize_placeholders
from dbwrap.sql import substitute_placeholders, tokenize_sql
from dbwrap.types import Param


def escape(s):
    return s.replace("'", "''")


def binary(b):
    return f"X'{b.hex()}'"


def render(value):
    return render_literal(value, escape, binary)


class TestTokenize:
    """Test the single-pass template tokenizer"""

    def test_tokens_preserve_text(self):
        """Joining token texts gives back the template"""
        sql = "SELECT * FROM t WHERE a = ? AND b = 'x?' -- c?\nAND d LIKE '5%'"
        tokens = tokenize_sql(sql)
        assert ''.join(t.text for t in tokens) == sql

    def test_placeholder_inside_literal_is_not_a_placeholder(self):
        tokens = tokenize_sql("SELECT '?' , ?")
        types = [t.type for t in tokens]
        assert types.count(TokenType.PLACEHOLDER) == 1
        assert TokenType.STRING_LITERAL in types

    def test_quoted_identifiers_and_comments(self):
        sql = 'SELECT "a?b", `c?d` /* ? */ FROM t -- ?'
        assert count_placeholders(sql) == 0

    def test_doubled_quote_inside_literal(self):
        assert count_placeholders("SELECT 'it''s ?' , ?") == 1

    def test_mysql_backslash_escapes(self):
        """MySQL string literals may contain backslash-escaped quotes"""
        sql = r"SELECT 'a\'?' , ?"
        assert count_placeholders(sql, 'mysql') == 1

    def test_mysql_double_quoted_string(self):
        """MySQL double-quoted strings also take backslash escapes"""
        sql = r'SELECT "a\"?" , ?'
        assert count_placeholders(sql, 'mysql') == 1
        types = [t.type for t in tokenize_sql(sql, 'mysql')]
        assert TokenType.QUOTED_IDENT not in types

    def test_mysql_hash_comment(self):
        assert count_placeholders('SELECT ? # why?\nFROM t', 'mysql') == 1

    def test_hash_is_not_a_comment_elsewhere(self):
        """Postgres uses # as an operator, so only MySQL skips it"""
        assert count_placeholders('SELECT ? # ?', 'postgresql') == 2

    def test_count_without_placeholders(self):
        assert count_placeholders('') == 0
        assert count_placeholders('SELECT 1') == 0


class TestSubstitute:
    """Test literal substitution of `?` placeholders"""

    def test_left_to_right(self):
        sql = substitute_placeholders('INSERT INTO t VALUES (?, ?, ?)', (1, 'a', None), render)
        assert sql == "INSERT INTO t VALUES (1, 'a', null)"

    def test_values_containing_placeholder_are_not_rescanned(self):
        sql = substitute_placeholders('SELECT ?, ?', ('why?', 2), render)
        assert sql == "SELECT 'why?', 2"

    def test_literal_question_mark_preserved(self):
        sql = substitute_placeholders("SELECT '?' AS q, ?", (5,), render)
        assert sql == "SELECT '?' AS q, 5"

    def test_too_few_args(self):
        with pytest.raises(ArgumentError, match='needs 2 but 1'):
            substitute_placeholders('SELECT ?, ?', (1,), render)

    def test_too_many_args(self):
        with pytest.raises(ArgumentError, match='needs 1 but 2'):
            substitute_placeholders('SELECT ?', (1, 2), render)

    def test_no_placeholders_left(self):
        sql = substitute_placeholders('UPDATE t SET a = ? WHERE b = ?', ("O'Reilly", 3), render)
        assert count_placeholders(sql) == 0


class TestRenderLiteral:
    """Test rendering of single values"""

    def test_exact_int_is_raw(self):
        assert render(42) == '42'
        assert render(-7) == '-7'

    def test_bool_is_numeric(self):
        assert render(True) == '1'
        assert render(False) == '0'

    def test_null_forms(self):
        assert render(None) == 'null'
        assert render('') == 'null'
        assert render(float('nan')) == 'null'
        assert render(float('inf')) == 'null'

    def test_float_is_quoted(self):
        assert render(1.5) == "'1.5'"

    def test_string_is_escaped(self):
        assert render("it's") == "'it''s'"

    def test_numeric_string_is_quoted(self):
        """Only exact integers skip escaping"""
        assert render('42') == "'42'"

    def test_dates_and_decimals(self):
        assert render(datetime.date(2023, 5, 15)) == "'2023-05-15'"
        assert render(datetime.datetime(2023, 5, 15, 14, 30)) == "'2023-05-15 14:30:00'"
        assert render(decimal.Decimal('1E+2')) == "'100'"

    def test_bytes_use_binary_literal(self):
        assert render(b'\x01\xff') == "X'01ff'"

    def test_int_outside_64_bit_range(self):
        assert render(2**63 - 1) == '9223372036854775807'
        assert render(-2**63) == '-9223372036854775808'
        with pytest.raises(ArgumentError, match='64-bit'):
            render(2**63)
        with pytest.raises(ArgumentError, match='64-bit'):
            render(-2**70)


class TestRenderParam:
    """Test rendering of tagged Params by their bind type"""

    def test_integer(self):
        assert render(Param.integer(5)) == '5'
        assert render(Param.integer('5')) == '5'

    def test_double_is_quoted(self):
        assert render(Param.double(2)) == "'2.0'"
        assert render(Param.double(float('nan'))) == 'null'

    def test_text_is_escaped(self):
        assert render(Param.text(42)) == "'42'"
        assert render(Param.text("it's")) == "'it''s'"

    def test_binary(self):
        assert render(Param.binary(b'\x00')) == "X'00'"

    def test_null(self):
        assert render(Param.null()) == 'null'

    def test_substituted(self):
        sql = substitute_placeholders('SELECT ?, ?', (Param.integer(5), Param.text('a')), render)
        assert sql == "SELECT 5, 'a'"


class TestStandardizePlaceholders:
    """Test rewriting `?` to the driver paramstyle"""

    def test_mysql(self):
        assert standardize_placeholders('SELECT ? , ?', 'mysql') == 'SELECT %s , %s'

    def test_percent_doubled_for_pyformat(self):
        sql = standardize_placeholders("SELECT * FROM t WHERE a LIKE '5%' AND b = ?", 'postgresql')
        assert sql == "SELECT * FROM t WHERE a LIKE '5%%' AND b = %s"

    def test_literal_question_mark_kept(self):
        assert standardize_placeholders("SELECT '?', ?", 'mysql') == "SELECT '?', %s"

    def test_sqlite_unchanged(self):
        sql = "SELECT ? WHERE a LIKE '5%'"
        assert standardize_placeholders(sql, 'sqlite') == sql

    def test_unknown_dialect(self):
        with pytest.raises(ValueError, match='Unknown dialect'):
            standardize_placeholders('SELECT ?', 'oracle')


class TestQuoteIdentifier:
    """Test identifier quoting"""

    def test_mysql_backticks(self):
        assert quote_identifier('users') == '`users`'

    def test_double_quotes(self):
        assert quote_identifier('users', 'postgresql') == '"users"'
        assert quote_identifier('users', 'sqlite') == '"users"'

    def test_dotted(self):
        assert quote_identifier('app.users', 'mysql') == '`app`.`users`'

    def test_embedded_quote_doubled(self):
        assert quote_identifier('we"ird', 'postgresql') == '"we""ird"'

    def test_empty(self):
        with pytest.raises(ValueError):
            quote_identifier('')
