"""Tests for report data, PDF rendering and the results workbook."""

import io

import openpyxl
import pytest

from api.evaluation_models import Evaluation
from api.evaluation_pdf import build_report_data, render_evaluation_report, render_multiple_reports
from api.evaluation_ranking import build_ranking, build_results, results_workbook


@pytest.mark.django_db
class TestReportData:
    def test_stages_in_order_with_every_template_item(self, people, periods, items, make_evaluation):
        staff = people['staff']
        final = make_evaluation(staff, periods['p2'], stage='final', status='submitted',
                                grades={items[0]: ('A', 'great')}, overall_grade='A')
        own = make_evaluation(staff, periods['p2'], stage='self', grades={items[2]: ('C', '')})

        data = build_report_data(staff, periods['p2'], [final, own])
        assert data['evaluatee'] == 'Staff Tester'
        assert data['department'] == 'Store A'
        assert [e['stage'] for e in data['evaluations']] == ['self', 'final']
        assert [i['name'] for i in data['evaluations'][1]['items']] == [i.name for i in items]
        assert data['evaluations'][1]['total_score'] == 5
        assert data['evaluations'][1]['status'] == 'Submitted'
        assert data['evaluations'][0]['submitted_at'] == '-'

    def test_deleted_evaluatee_uses_placeholder(self, people, periods, make_evaluation):
        evaluation = make_evaluation(people['other'], periods['p2'])
        people['other'].soft_delete()
        data = build_report_data(people['other'], periods['p2'], [evaluation])
        assert data['evaluatee'] == 'Unknown employee'

    def test_rendered_pdf(self, people, periods, items, make_evaluation):
        evaluation = make_evaluation(people['staff'], periods['p2'], grades={items[0]: ('B', 'R&D <team>')})
        pdf = render_evaluation_report(build_report_data(people['staff'], periods['p2'], [evaluation]))
        assert pdf.startswith(b'%PDF')

    def test_empty_multiple_report(self):
        assert render_multiple_reports([]).startswith(b'%PDF')


@pytest.mark.django_db
class TestRanking:
    def test_only_submitted_finals_ranked(self, people, periods, items, make_evaluation):
        make_evaluation(people['staff'], periods['p2'], stage='final', status='in_progress',
                        grades={items[0]: ('A', '')})
        make_evaluation(people['other'], periods['p2'], stage='mg', status='submitted',
                        grades={items[0]: ('A', '')})
        assert build_ranking(periods['p2']) == []

    def test_ties_broken_by_name(self, people, periods, items, make_evaluation):
        make_evaluation(people['staff'], periods['p2'], stage='final', status='submitted',
                        grades={items[0]: ('B', '')})
        make_evaluation(people['other'], periods['p2'], stage='final', status='submitted',
                        grades={items[0]: ('B', '')})
        names = [r['evaluatee_name'] for r in build_ranking(periods['p2'])]
        assert names == ['Other Tester', 'Staff Tester']

    def test_change_is_against_the_immediately_preceding_period(self, people, periods, items, make_evaluation):
        staff, other = people['staff'], people['other']
        make_evaluation(staff, periods['p0'], stage='final', status='submitted', grades={items[0]: ('E', '')})
        make_evaluation(staff, periods['p1'], stage='final', status='submitted', grades={items[0]: ('C', '')})
        make_evaluation(other, periods['p0'], stage='final', status='submitted', grades={items[0]: ('B', '')})
        make_evaluation(staff, periods['p2'], stage='final', status='submitted', grades={items[0]: ('A', '')})
        make_evaluation(other, periods['p2'], stage='final', status='submitted', grades={items[0]: ('D', '')})

        by_name = {r['evaluatee_name']: r for r in build_ranking(periods['p2'])}
        assert (by_name['Staff Tester']['previous_score'], by_name['Staff Tester']['change']) == (3, 2)
        assert (by_name['Other Tester']['previous_score'], by_name['Other Tester']['change']) == (None, None)


@pytest.mark.django_db
class TestResultsWorkbook:
    def test_rows_written_under_header(self, people, periods, items, make_evaluation):
        make_evaluation(people['staff'], periods['p2'], stage='self', grades={items[0]: ('A', '')})
        rows = build_results(Evaluation.objects.all())
        workbook = openpyxl.load_workbook(io.BytesIO(results_workbook(rows)))
        sheet = workbook['Results']
        assert sheet['A1'].value == '#'
        assert sheet['B2'].value == 'Staff Tester'
        assert sheet['G2'].value == 5
