"""Unit tests for the label template interpreter."""

from __future__ import annotations

from datetime import datetime

import pytest

from integrity_checkpoint.errors import (
    ExpressionError,
    ExpressionEvaluationError,
    ExpressionSyntaxError,
)
from integrity_checkpoint.label.expression import (
    compile_template,
    evaluate,
    format_date,
    system_properties,
)

NOW = datetime(2024, 3, 7, 14, 5, 9, 123000)


class TestEvaluate:
    """Test evaluate() against build environments."""

    def test_literal_unchanged(self):
        assert evaluate({}, "literal") == "literal"
        assert evaluate({"JOB_NAME": "x"}, "Release-2024_01") == "Release-2024_01"

    def test_env_interpolation(self):
        env = {"JOB_NAME": "myjob", "BUILD_NUMBER": "5"}
        assert evaluate(env, "${env['JOB_NAME']}-${env['BUILD_NUMBER']}") == "myjob-5"

    def test_double_quoted_keys_and_property_access(self):
        env = {"JOB_NAME": "myjob"}
        assert evaluate(env, '${env["JOB_NAME"]}') == "myjob"
        assert evaluate(env, "${env.JOB_NAME}") == "myjob"
        assert evaluate(env, "$env.JOB_NAME-x") == "myjob-x"

    def test_result_is_trimmed(self):
        assert evaluate({"A": " padded "}, "  ${env['A']}  ") == "padded"

    def test_none_or_empty_expression(self):
        assert evaluate({}, None) == ""
        assert evaluate({}, "") == ""

    def test_missing_variable_is_empty(self):
        assert evaluate({}, "build-${env['MISSING']}") == "build-"
        assert evaluate({}, "build-${env.MISSING}") == "build-"

    def test_elvis_default(self):
        assert evaluate({}, "${env['BRANCH'] ?: 'main'}") == "main"
        assert evaluate({"BRANCH": "dev"}, "${env['BRANCH'] ?: 'main'}") == "dev"

    def test_concatenation_and_arithmetic(self):
        env = {"JOB_NAME": "job"}
        assert evaluate(env, "${env['JOB_NAME'] + '_' + 'x'}") == "job_x"
        assert evaluate(env, "${1 + 2}") == "3"
        assert evaluate(env, "${'v' + 1 + 2}") == "v12"

    def test_string_methods(self):
        env = {"JOB_NAME": "My Job"}
        assert evaluate(env, "${env['JOB_NAME'].toUpperCase()}") == "MY JOB"
        assert evaluate(env, "${env['JOB_NAME'].toLowerCase()}") == "my job"
        assert evaluate(env, "${env['JOB_NAME'].replace(' ', '_')}") == "My_Job"
        assert evaluate(env, "${env['JOB_NAME'].substring(3)}") == "Job"
        assert evaluate(env, "${env['JOB_NAME'].substring(0, 2)}") == "My"

    def test_date_helpers(self):
        assert evaluate({}, "${date('yyyy_MM_dd')}", now=NOW) == "2024_03_07"
        assert evaluate({}, "${now().format('HHmmss')}", now=NOW) == "140509"

    def test_legacy_date_syntax(self):
        env = {"JOB_NAME": "nightly", "BUILD_NUMBER": "42"}
        template = (
            "${env['JOB_NAME']}-${env['BUILD_NUMBER']}-"
            "${new java.text.SimpleDateFormat(\"yyyy_MM_dd\").format(new Date())}"
        )
        assert evaluate(env, template, now=NOW) == "nightly-42-2024_03_07"

    def test_system_properties(self):
        assert evaluate({}, "${sys['os.name']}") == system_properties()["os.name"].strip()
        assert evaluate({}, "${sys['no.such.property']}") == ""

    def test_escapes(self):
        assert evaluate({}, 'say \\"hi\\"') == 'say "hi"'
        assert evaluate({}, "cost \\$5") == "cost $5"


class TestSyntaxErrors:
    """Malformed templates raise ExpressionSyntaxError."""

    @pytest.mark.parametrize(
        "template",
        [
            'unbalanced"',
            "${env['JOB_NAME']",
            "${env['JOB_NAME}",
            "${env['JOB_NAME'}",
            "${(1 + 2}",
            "${}",
            "trailing \\",
            "$ dollar",
            "${env['A'] #}",
        ],
    )
    def test_malformed(self, template):
        with pytest.raises(ExpressionSyntaxError):
            compile_template(template)

    def test_syntax_error_is_expression_error(self):
        with pytest.raises(ExpressionError):
            evaluate({}, 'unbalanced"')

    def test_position_reported(self):
        with pytest.raises(ExpressionSyntaxError) as excinfo:
            compile_template('abc"')
        assert excinfo.value.position == 3

    def test_deep_nesting_is_syntax_error(self):
        template = "${" + "(" * 400 + "'a'" + ")" * 400 + "}"
        with pytest.raises(ExpressionSyntaxError) as excinfo:
            compile_template(template)
        assert isinstance(excinfo.value.__cause__, RecursionError)


class TestEvaluationErrors:
    """Well-formed templates that fail at render time."""

    def test_unknown_name(self):
        with pytest.raises(ExpressionEvaluationError):
            evaluate({}, "${JOB_NAME}")

    def test_unknown_function(self):
        with pytest.raises(ExpressionEvaluationError):
            evaluate({}, "${exec('rm -rf /')}")

    def test_unknown_class(self):
        with pytest.raises(ExpressionEvaluationError):
            evaluate({}, "${new java.io.File('/etc/passwd')}")

    def test_unknown_method(self):
        with pytest.raises(ExpressionEvaluationError):
            evaluate({"A": "x"}, "${env['A'].getClass()}")

    def test_method_on_missing_value(self):
        with pytest.raises(ExpressionEvaluationError):
            evaluate({}, "${env['MISSING'].toUpperCase()}")

    def test_wrong_argument_count(self):
        with pytest.raises(ExpressionEvaluationError):
            evaluate({}, "${date()}")

    def test_illegal_date_pattern(self):
        with pytest.raises(ExpressionEvaluationError):
            evaluate({}, "${date('yyyy-qq')}", now=NOW)

    def test_long_concatenation_is_evaluation_error(self):
        template = "${" + " + ".join(["'a'"] * 3000) + "}"
        with pytest.raises(ExpressionEvaluationError) as excinfo:
            evaluate({}, template)
        assert "nested too deeply" in str(excinfo.value)

    def test_evaluation_error_is_not_syntax_error(self):
        with pytest.raises(ExpressionEvaluationError) as excinfo:
            evaluate({}, "${nope}")
        assert not isinstance(excinfo.value, ExpressionSyntaxError)


class TestTemplate:
    """Compiled templates render fresh per environment."""

    def test_render_per_environment(self):
        template = compile_template("${env['BUILD_NUMBER']}")
        assert template.render({"BUILD_NUMBER": "1"}) == "1"
        assert template.render({"BUILD_NUMBER": "2"}) == "2"

    def test_environment_is_read_only(self):
        env = {"A": "a"}
        compile_template("${env['A']}").render(env)
        assert env == {"A": "a"}


class TestFormatDate:
    """SimpleDateFormat-style pattern support."""

    def test_numeric_fields(self):
        assert format_date(NOW, "yyyy-MM-dd HH:mm:ss.SSS") == "2024-03-07 14:05:09.123"
        assert format_date(NOW, "yy/M/d") == "24/3/7"
        assert format_date(NOW, "hh a") == "02 " + NOW.strftime("%p")

    def test_quoted_text(self):
        assert format_date(NOW, "'week' yyyy") == "week 2024"
        assert format_date(NOW, "yyyy''MM") == "2024'03"
        assert format_date(NOW, "'It''s' yyyy") == "It's 2024"

    def test_unterminated_quote(self):
        with pytest.raises(ExpressionEvaluationError):
            format_date(NOW, "'oops")
