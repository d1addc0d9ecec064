"""Tests for template resolution."""

from datetime import date, timedelta

from action_pipeline.templates import (
    MISSING_VALUE,
    get_nested_value,
    resolve_parameters,
    resolve_template,
)


class TestGetNestedValue:
    """Tests for get_nested_value function."""

    def test_simple_and_nested_access(self):
        data = {'sku': 'A-1', 'product': {'price': 19.99}}
        assert get_nested_value(data, 'sku') == 'A-1'
        assert get_nested_value(data, 'product.price') == 19.99

    def test_array_indexing(self):
        """Bracket and dot notation both index lists."""
        data = {'items': [{'id': 1}, {'id': 2}]}
        assert get_nested_value(data, 'items[0].id') == 1
        assert get_nested_value(data, 'items.1.id') == 2

    def test_negative_indexing(self):
        data = {'items': [1, 2, 3, 4]}
        assert get_nested_value(data, 'items.-1') == 4
        assert get_nested_value(data, 'items[-2]') == 3

    def test_missing_paths(self):
        data = {'a': {'b': 1}, 'items': [1]}
        assert get_nested_value(data, 'a.c') is None
        assert get_nested_value(data, 'x.y.z') is None
        assert get_nested_value(data, 'items.5') is None
        assert get_nested_value(data, 'items.first') is None
        assert get_nested_value(data, 'a.b.c') is None

    def test_empty_inputs(self):
        assert get_nested_value(None, 'a') is None
        assert get_nested_value({'a': 1}, '') is None


class TestResolveTemplate:
    """Tests for resolve_template function."""

    def test_embedded_variables(self):
        context = {'name': 'Alice', 'count': 3}
        assert resolve_template('Hi {{name}}, {{count}} orders', context) == 'Hi Alice, 3 orders'

    def test_whole_string_keeps_type(self):
        """A lone placeholder resolves to the raw value."""
        context = {'product': {'price': 12.5, 'tags': ['a', 'b']}}
        assert resolve_template('{{product.price}}', context) == 12.5
        assert resolve_template(' {{product.tags}} ', context) == ['a', 'b']

    def test_prior_output_reference(self):
        context = {'fetch_products': {'items': [{'id': 'p-1'}]}}
        assert resolve_template('{{fetch_products.items[0].id}}', context) == 'p-1'

    def test_missing_variable(self):
        assert resolve_template('Score: {{missing}}', {}) == f'Score: {MISSING_VALUE}'
        assert resolve_template('{{missing}}', {}) == MISSING_VALUE

    def test_complex_object_embedded_as_json(self):
        context = {'data': {'items': [1, 2, 3]}}
        result = resolve_template('Data: {{data}}', context)
        assert '"items"' in result
        assert '[1, 2, 3]' in result

    def test_date_builtins(self):
        today = date.today()
        assert resolve_template('{{today}}', {}) in (
            today.isoformat(),
            (today + timedelta(days=1)).isoformat(),
            (today - timedelta(days=1)).isoformat(),
        )
        assert len(resolve_template('{{yesterday}}', {})) == 10
        assert resolve_template('{{now}}', {}).endswith('Z')

    def test_context_shadows_builtins(self):
        assert resolve_template('{{today}}', {'today': 'holiday'}) == 'holiday'

    def test_non_string_passthrough(self):
        assert resolve_template(42, {}) == 42
        assert resolve_template(None, {}) is None


class TestResolveParameters:
    """Tests for resolve_parameters function."""

    def test_nested_dicts_and_lists(self):
        params = {
            'subject': 'Low stock: {{sku}}',
            'recipients': ['{{owner.email}}', 'ops@example.com'],
            'payload': {'quantity': '{{stock}}'},
        }
        context = {'sku': 'A-1', 'stock': 2, 'owner': {'email': 'me@example.com'}}
        assert resolve_parameters(params, context) == {
            'subject': 'Low stock: A-1',
            'recipients': ['me@example.com', 'ops@example.com'],
            'payload': {'quantity': 2},
        }

    def test_preserve_non_string_values(self):
        params = {'count': 5, 'enabled': True, 'data': None}
        assert resolve_parameters(params, {}) == params

    def test_does_not_mutate_input(self):
        params = {'subject': '{{sku}}'}
        resolve_parameters(params, {'sku': 'A-1'})
        assert params == {'subject': '{{sku}}'}
