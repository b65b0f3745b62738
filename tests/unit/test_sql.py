import pytest
from sqlrecord.sql import TokenType, compact, placeholder_for, rebind
from sqlrecord.sql import tokenize_sql


class TestRebind:

    def test_postgres_placeholders(self):
        sql = 'SELECT id, name FROM t WHERE id = ? AND name = ?'
        assert rebind(sql, 'postgresql') == 'SELECT id, name FROM t WHERE id = %s AND name = %s'

    def test_sqlite_is_unchanged(self):
        sql = "SELECT id FROM t WHERE name LIKE 'a%' AND id = ?"
        assert rebind(sql, 'sqlite') == sql

    def test_percent_is_escaped_for_postgres(self):
        sql = "SELECT id FROM t WHERE name LIKE 'a%' AND id = ?"
        assert rebind(sql, 'postgresql') == "SELECT id FROM t WHERE name LIKE 'a%%' AND id = %s"

    def test_question_mark_in_literal_is_kept(self):
        sql = "SELECT id FROM t WHERE name = 'why?' AND id = ?"
        assert rebind(sql, 'postgresql') == "SELECT id FROM t WHERE name = 'why?' AND id = %s"

    def test_question_mark_in_quoted_identifier_is_kept(self):
        sql = 'SELECT "odd?" FROM t WHERE id = ?'
        assert rebind(sql, 'postgresql') == 'SELECT "odd?" FROM t WHERE id = %s'

    def test_unknown_dialect(self):
        with pytest.raises(ValueError, match='Unknown dialect'):
            rebind('SELECT 1', 'oracle')

    def test_empty_sql(self):
        assert rebind('', 'postgresql') == ''


def test_placeholder_for():
    assert placeholder_for('sqlite') == '?'
    assert placeholder_for('postgresql') == '%s'


def test_compact_preserves_literals():
    sql = """
    SELECT id,   name
    FROM t
    WHERE name = 'two  spaces'
    """
    assert compact(sql) == "SELECT id, name FROM t WHERE name = 'two  spaces'"


def test_tokenize_keeps_all_text():
    sql = "SELECT 'a?' , \"b\" FROM t WHERE c = ?"
    tokens = tokenize_sql(sql)
    assert ''.join(t.text for t in tokens) == sql
    assert [t.type for t in tokens if t.type != TokenType.SQL_TEXT] == [
        TokenType.STRING_LITERAL,
        TokenType.QUOTED_IDENTIFIER,
        TokenType.POSITIONAL_PH,
    ]
