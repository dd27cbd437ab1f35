from datetime import date

import aggregation
from domain import ProgressEntry, ProgressType, Teacher, Marhalah


def test_resolve_or_skip_drops_none_and_lookup_errors():
    lookup = {1: 'a', 3: 'c'}
    pairs = list(aggregation.resolve_or_skip([1, 2, 3, 4], lambda n: lookup[n] if n != 3 else None))
    assert pairs == [(1, 'a')]


def test_natural_key_orders_digit_runs_by_value():
    labels = ['10A', '2A', '1B', '1a']
    assert sorted(labels, key=aggregation.natural_key) == ['1a', '1B', '2A', '10A']


def test_unknown_level_sorts_last():
    assert aggregation.level_index('Mutawassithah') == 0
    assert aggregation.level_index('Jamiah') == 2
    assert aggregation.level_index('Ibtidaiyah') == 3


def test_person_recap_counts_statuses_and_sorts_uniformly(entry):
    entries = [
        entry(1, status='Hadir', name='Bilal', person_id=2, class_label='10A'),
        entry(2, status='Alpa', name='Bilal', person_id=2, class_label='10A'),
        entry(3, status='Terlambat', name='ahmad', person_id=1, class_label='2A'),
        entry(4, status='Hadir', name='Umar', person_id=9, role='Musammi', level='Aliyah'),
        entry(5, status='Sakit', name='Zaid', person_id=3, class_label='2A'),
    ]
    rows = aggregation.person_recap(entries)

    assert [r['Nama'] for r in rows] == ['ahmad', 'Zaid', 'Bilal', 'Umar']
    bilal = rows[2]
    assert bilal['Hadir'] == 1 and bilal['Alpa'] == 1 and bilal['Total'] == 2
    assert list(bilal)[5:] == ['Hadir', 'Izin', 'Sakit', 'Terlambat', 'Alpa', 'Total']
    assert rows[3]['Peran'] == 'Musammi'


def test_person_recap_keeps_roles_apart(entry):
    rows = aggregation.person_recap([
        entry(1, person_id=5, role='Santri'),
        entry(2, person_id=5, role='Musammi', name='Ustadz'),
    ])
    assert len(rows) == 2


def test_class_recap_percentage_rounds_half_up(entry):
    entries = [entry(i, status='Hadir') for i in range(1, 2)]
    entries += [entry(i, status='Alpa') for i in range(2, 9)]
    entries += [entry(20, status='Hadir', class_label='2A')] * 2
    entries.append(entry(23, status='Izin', class_label='2A'))

    rows = aggregation.class_recap(entries)

    assert [r['key'] for r in rows] == ['Mutawassithah-1A', 'Mutawassithah-2A']
    assert rows[0]['PersenKehadiran'] == '13%'
    assert rows[1]['PersenKehadiran'] == '67%'
    assert rows[1]['Total'] == 3


def test_attendance_percentage_with_no_entries():
    assert aggregation.attendance_percentage(0, 0) == '0%'


def test_session_recap_orders_by_date_then_time_slot(entry):
    rows = aggregation.session_recap([
        entry(1, date='2024-01-04', time_slot='Isya'),
        entry(2, date='2024-01-05', time_slot='Ashar'),
        entry(3, date='2024-01-05', time_slot='Shubuh', status='Izin'),
        entry(4, date='2024-01-05', time_slot='Shubuh'),
    ])
    assert [(r['Tanggal'], r['Waktu']) for r in rows] == [
        ('2024-01-05', 'Shubuh'), ('2024-01-05', 'Ashar'), ('2024-01-04', 'Isya')]
    assert rows[0]['Total'] == 2 and rows[0]['Izin'] == 1


def test_session_class_breakdown_limits_to_one_session(entry):
    rows = aggregation.session_class_breakdown([
        entry(1, date='2024-01-05', time_slot='Shubuh', class_label='2A'),
        entry(2, date='2024-01-05', time_slot='Shubuh', class_label='1A', status='Sakit'),
        entry(3, date='2024-01-05', time_slot='Ashar', class_label='1A'),
    ], '2024-01-05', 'Shubuh')
    assert [r['Kelas'] for r in rows] == ['1A', '2A']
    assert rows[0]['Sakit'] == 1 and rows[0]['Total'] == 1
    assert 'PersenKehadiran' not in rows[0]


def test_status_totals_and_time_slot_totals_follow_vocabulary_order(entry):
    entries = [entry(1, status='Terlambat', time_slot='Isya'), entry(2, status='Hadir')]
    assert aggregation.status_totals(entries) == [
        {'name': 'Hadir', 'value': 1},
        {'name': 'Izin', 'value': 0},
        {'name': 'Sakit', 'value': 0},
        {'name': 'Alpa', 'value': 0},
        {'name': 'Terlambat', 'value': 1},
    ]
    slots = aggregation.time_slot_totals(entries)
    assert [s['name'] for s in slots] == ['Shubuh', 'Dhuha', 'Ashar', 'Isya']
    assert slots[0]['Hadir'] == 1 and slots[3]['Terlambat'] == 1


def test_filter_attendance_bounds_are_inclusive(entry):
    entries = [
        entry(1, date='2024-01-01', name='Ahmad Fauzi'),
        entry(2, date='2024-01-05', name='Bilal', status='Izin'),
        entry(3, date='2024-01-06', name='ahmad kecil'),
    ]
    in_range = aggregation.filter_attendance(entries, start='2024-01-01', end='2024-01-05')
    assert [e.id for e in in_range] == [1, 2]
    by_name = aggregation.filter_attendance(entries, name_query='AHMAD')
    assert [e.id for e in by_name] == [1, 3]
    assert [e.id for e in aggregation.filter_attendance(entries, status='Izin')] == [2]


def test_resolve_display_date(entry):
    entries = [entry(1, date='2024-01-03'), entry(2, date='2024-01-04')]
    assert aggregation.resolve_display_date(entries, '2024-01-04') == \
        aggregation.DisplayDate('2024-01-04', True)
    assert aggregation.resolve_display_date(entries, date(2024, 1, 9)) == \
        aggregation.DisplayDate('2024-01-04', False)
    assert aggregation.resolve_display_date([], '2024-01-09') == \
        aggregation.DisplayDate('2024-01-09', True)


def test_level_status_counts_for_one_date(entry):
    counts = aggregation.level_status_counts([
        entry(1, date='2024-01-05', level='Aliyah', status='Sakit'),
        entry(2, date='2024-01-04', level='Aliyah', status='Sakit'),
    ], '2024-01-05')
    assert counts['Aliyah']['Sakit'] == 1
    assert sum(counts['Jamiah'].values()) == 0


def test_weekly_trend_has_seven_buckets_ending_today(entry):
    buckets = aggregation.weekly_trend([entry(1, date='2024-01-07', status='Alpa')], '2024-01-07')
    assert len(buckets) == 7
    assert buckets[0]['date'] == '2024-01-01' and buckets[0]['name'] == 'Mon'
    assert buckets[-1]['name'] == 'Sun'
    assert buckets[-1]['Alpa'] == 1


def test_daily_trend_defaults_and_empty_window(entry):
    buckets = aggregation.daily_trend([entry(1, date='2024-01-05')], '2024-01-31')
    assert len(buckets) == 31
    assert buckets[0]['fullDate'] == '2024-01-01'
    assert buckets[4] == {'date': '05 Jan', 'fullDate': '2024-01-05', 'Hadir': 1, 'Izin': 0,
                          'Sakit': 0, 'Alpa': 0, 'Terlambat': 0}
    assert aggregation.daily_trend([], '2024-01-31', start='2024-02-01', end='2024-01-01') == []


def test_student_attendance_stats_ignore_teachers_with_same_id(entry):
    entries = [
        entry(1, date='2024-01-05', person_id=7),
        entry(2, date='2024-02-01', person_id=7, status='Alpa'),
        entry(3, date='2024-01-06', person_id=7, role='Musammi', status='Izin'),
    ]
    january = aggregation.student_attendance_stats(entries, 7, month='2024-01')
    assert january['Hadir'] == 1 and january['Izin'] == 0 and january['Alpa'] == 0
    window = aggregation.student_attendance_stats(entries, 7, start='2024-01-05', end='2024-02-01')
    assert window['Hadir'] == 1 and window['Alpa'] == 1


def test_parse_progress_number():
    assert aggregation.parse_progress_number('2.5 Juz') == 2.5
    assert aggregation.parse_progress_number('juz 3') == 0
    assert aggregation.parse_progress_number(None) == 0
    assert aggregation.parse_progress_number('1e400') == 0


def _progress(values, dimension=ProgressType.Murojaah, student_id=1):
    return [ProgressEntry(id=i, student_id=student_id, month_key=month, dimension=dimension,
                          value=value) for i, (month, value) in enumerate(values, start=1)]


def test_average_progress_value_rounds_like_to_fixed():
    progress = _progress([('2024-01', '1'), ('2024-02', '2'), ('2024-03', '2')])
    assert aggregation.average_progress_value(progress, 1, 'Murojaah') == '1.7'
    assert aggregation.average_progress_value(progress, 1, 'Murojaah', '2024-01', '2024-02') == '1.5'
    assert aggregation.average_progress_value(progress, 2, 'Murojaah') is None
    assert aggregation.to_fixed(0.25, 1) == '0.3'


def test_latest_progress_value_takes_most_recent_month():
    progress = _progress([('2024-03', '5'), ('2024-01', '3')], dimension=ProgressType.Hafalan)
    assert aggregation.latest_progress_value(progress, 1, 'Hafalan') == '5'
    assert aggregation.latest_progress_value(progress, 1, 'Hafalan', end_month='2024-02') == '3'


def test_progress_summary_without_data():
    summary = aggregation.progress_summary([], 1, '2024-01', '2024-01')
    assert summary == aggregation.ProgressSummary(None, None, None)


def test_problem_students_ordering(entry):
    entries = [
        entry(1, name='Bilal', status='Izin'),
        entry(2, name='Bilal', status='Alpa'),
        entry(3, name='Bilal', status='Alpa'),
        entry(4, name='ahmad', status='Sakit'),
        entry(5, name='ahmad', status='Izin'),
        entry(6, name='Umar', status='Hadir'),
        entry(7, name='Zaid', status='Alpa', class_label='2A'),
    ]
    assert aggregation.problem_students(entries, 'Mutawassithah', '1A') == [
        ('ahmad', [('Izin', 1), ('Sakit', 1)]),
        ('Bilal', [('Alpa', 2), ('Izin', 1)]),
    ]


def test_count_by_level_and_sort_people():
    teachers = [
        Teacher(id=1, name='Umar', level=Marhalah.Aliyah, class_label='10'),
        Teacher(id=2, name='Hasan', level=Marhalah.Mutawassithah, class_label='2'),
        Teacher(id=3, name='Ali', level=Marhalah.Mutawassithah, class_label='2'),
    ]
    assert aggregation.count_by_level(teachers) == {'Mutawassithah': 2, 'Aliyah': 1, 'Jamiah': 0}
    assert [t.name for t in aggregation.sort_people(teachers)] == ['Ali', 'Hasan', 'Umar']


def test_inputs_are_not_mutated(entry):
    entries = [entry(2, date='2024-01-02'), entry(1, date='2024-01-01')]
    snapshot = list(entries)
    aggregation.session_recap(entries)
    aggregation.person_detail(entries, 1, 'Santri')
    assert entries == snapshot


def test_daily_trend_bucket_count_matches_range():
    buckets = aggregation.daily_trend([], '2024-03-31', start='2024-02-27', end='2024-03-02')
    assert [b['fullDate'] for b in buckets] == [
        '2024-02-27', '2024-02-28', '2024-02-29', '2024-03-01', '2024-03-02']


def test_person_recap_totals_equal_entry_counts(entry):
    entries = [entry(i, person_id=i % 3, status=('Hadir', 'Izin', 'Alpa')[i % 3]) for i in range(10)]
    rows = aggregation.person_recap(entries)
    assert sum(r['Total'] for r in rows) == len(entries)
    for row in rows:
        assert row['Total'] == sum(row[s] for s in ('Hadir', 'Izin', 'Sakit', 'Terlambat', 'Alpa'))


def test_overflowing_progress_values_count_as_zero():
    progress = _progress([('2024-01', '1e400'), ('2024-02', '1e308'), ('2024-03', '1e308')])
    assert aggregation.average_progress_value(progress, 1, 'Murojaah', '2024-01', '2024-01') == '0.0'
    assert aggregation.average_progress_value(progress, 1, 'Murojaah') == '0.0'
    assert aggregation.to_fixed(float('inf')) == '0.0'
    assert aggregation.to_fixed(1e308).startswith('1000000000')
