"""Tests for branch condition evaluation."""

import pytest

from action_pipeline.conditions import (
    compare_values,
    evaluate_clause,
    evaluate_condition,
)


class TestCompareValues:
    """Tests for compare_values function."""

    def test_numeric_comparisons(self):
        """Test <, >, <= and >=."""
        assert compare_values(5, '<', 10) is True
        assert compare_values(10, '<', 5) is False
        assert compare_values(10, '>', 5) is True
        assert compare_values(5, '<=', 5) is True
        assert compare_values(5, '>=', 10) is False

    def test_numeric_strings_are_coerced(self):
        """Stock levels often arrive as strings from platform payloads."""
        assert compare_values('3', '<', 10) is True
        assert compare_values('12.5', '>=', '12.5') is True

    def test_non_numeric_ordering_is_false(self):
        assert compare_values('abc', '<', 10) is False

    def test_equality(self):
        assert compare_values('active', '==', 'active') is True
        assert compare_values(5, '==', 10) is False
        assert compare_values(5, '!=', 10) is True
        assert compare_values(5, '!=', 5) is False

    @pytest.mark.parametrize("alias,actual,expected,result", [
        ('equals', 'draft', 'draft', True),
        ('eq', 1, 1, True),
        ('not_equals', 'draft', 'active', True),
        ('neq', 'draft', 'draft', False),
        ('greater_than', 20, 10, True),
        ('less_than', 20, 10, False),
        ('greater_than_or_equal', 10, 10, True),
        ('less_than_or_equal', 11, 10, False),
    ])
    def test_word_operator_aliases(self, alias, actual, expected, result):
        """Word operators used by stored command filters."""
        assert compare_values(actual, alias, expected) is result

    def test_string_operators_case_insensitive(self):
        assert compare_values('Summer Sale', 'contains', 'sale') is True
        assert compare_values('Summer Sale', 'not_contains', 'winter') is True
        assert compare_values('SKU-1042', 'starts_with', 'sku-') is True
        assert compare_values('SKU-1042', 'ends_with', '1042') is True
        assert compare_values('SKU-1042', 'ends_with', '9999') is False

    def test_existence(self):
        assert compare_values(0, 'exists', None) is True
        assert compare_values(None, 'exists', None) is False
        assert compare_values(None, 'not_exists', None) is True
        assert compare_values('x', 'not_exists', None) is False

    def test_none_actual_fails_comparisons(self):
        assert compare_values(None, '<', 10) is False
        assert compare_values(None, '==', 10) is False

    def test_unknown_operator(self):
        assert compare_values(1, 'between', 2) is False


class TestEvaluateClause:
    """Tests for evaluate_clause function."""

    def test_nested_path(self):
        clause = {'path': 'product.inventory.quantity', 'op': '<', 'value': 10}
        assert evaluate_clause(clause, {'product': {'inventory': {'quantity': 4}}}) is True
        assert evaluate_clause(clause, {'product': {'inventory': {'quantity': 40}}}) is False

    def test_template_in_value(self):
        """Expected value may reference the context."""
        clause = {'path': 'price', 'op': '>', 'value': '{{trigger_data.min_price}}'}
        context = {'price': 25, 'trigger_data': {'min_price': 20}}
        assert evaluate_clause(clause, context) is True

    def test_numeric_string_value(self):
        clause = {'path': 'stock', 'op': '==', 'value': '0'}
        assert evaluate_clause(clause, {'stock': 0}) is True

    def test_prior_action_output(self):
        clause = {'path': 'fetch_orders.count', 'op': '>=', 'value': 1}
        assert evaluate_clause(clause, {'fetch_orders': {'count': 3}}) is True

    def test_default_operator_is_equality(self):
        assert evaluate_clause({'path': 'status', 'value': 'paid'}, {'status': 'paid'}) is True


class TestEvaluateCondition:
    """Tests for evaluate_condition function."""

    def test_empty_condition_passes(self):
        assert evaluate_condition(None, {}) is True
        assert evaluate_condition({}, {}) is True
        assert evaluate_condition({'operator': 'AND', 'clauses': []}, {}) is True

    def test_single_clause(self):
        condition = {'path': 'order.total', 'op': '>', 'value': 100}
        assert evaluate_condition(condition, {'order': {'total': 150}}) is True
        assert evaluate_condition(condition, {'order': {'total': 50}}) is False

    def test_and_condition(self):
        condition = {
            'operator': 'AND',
            'clauses': [
                {'path': 'stock', 'op': '<', 'value': 5},
                {'path': 'sku', 'op': 'exists'}
            ]
        }
        assert evaluate_condition(condition, {'stock': 2, 'sku': 'A-1'}) is True
        assert evaluate_condition(condition, {'stock': 9, 'sku': 'A-1'}) is False
        assert evaluate_condition(condition, {'stock': 2}) is False

    def test_or_condition(self):
        condition = {
            'operator': 'or',
            'clauses': [
                {'path': 'priority', 'op': '==', 'value': 'high'},
                {'path': 'urgent', 'op': '==', 'value': True}
            ]
        }
        assert evaluate_condition(condition, {'priority': 'high', 'urgent': False}) is True
        assert evaluate_condition(condition, {'priority': 'low', 'urgent': True}) is True
        assert evaluate_condition(condition, {'priority': 'low', 'urgent': False}) is False

    def test_unknown_logical_operator_fails(self):
        condition = {'operator': 'XOR', 'clauses': [{'path': 'a', 'op': 'exists'}]}
        assert evaluate_condition(condition, {'a': 1}) is False
