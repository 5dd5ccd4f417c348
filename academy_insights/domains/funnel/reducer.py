# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Funnel reducer.

Pure functions turning funnel events into derived aggregates:
- Bottlenecks: per-stage dropout and contact behaviour
- Stage durations: most common stage transitions and their elapsed days
- Cohorts: monthly first-contact cohorts followed for four months
- Lead sources and trailing-period conversion metrics

Each student's events are walked in chronological order. A dropout is
counted against the stage the student was in, and only while that stage
entry is still open, so dropouts never exceed entries.

Rates are percentages with one decimal; day averages are whole days
unless noted otherwise.
"""

from collections import Counter, defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Mapping

from academy_insights.domains.funnel.models import (
    CONSULTATION_EVENTS,
    UNKNOWN_LEAD_SOURCE,
    BottleneckDetail,
    CohortRow,
    ContactStats,
    FunnelEventRecord,
    FunnelEventType,
    FunnelPeriodMetrics,
    FunnelStage,
    LeadSourceMetrics,
    StageDuration,
)
from academy_insights.utils.datetime import days_between, month_key, months_between, utc_now
from academy_insights.utils.numbers import mean_rounded, percent, round_half_up

# Cohorts are followed for months 0-3 after first contact
COHORT_MONTHS = 4

_DROPPED = FunnelStage.DROPPED_OFF.value


def filter_events(
    events: Iterable[FunnelEventRecord],
    lead_source: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[FunnelEventRecord]:
    """Keep events matching the lead source and the inclusive date range."""
    selected = []
    for event in events:
        if lead_source and event.lead_source != lead_source:
            continue
        day = event.event_date.date()
        if start_date and day < start_date:
            continue
        if end_date and day > end_date:
            continue
        selected.append(event)
    return selected


def _by_student(events: Iterable[FunnelEventRecord]) -> dict[str, list[FunnelEventRecord]]:
    histories: dict[str, list[FunnelEventRecord]] = defaultdict(list)
    for event in events:
        histories[event.student_id].append(event)
    for history in histories.values():
        # sort is stable, so same-instant events keep their stored order
        history.sort(key=lambda e: e.event_date)
    return histories


# =============================================================================
# Bottlenecks
# =============================================================================


def _contact_average(stats: list[ContactStats], attribute: str) -> float:
    if not stats:
        return 0.0
    return round_half_up(sum(getattr(s, attribute) for s in stats) / len(stats), 1)


def detect_bottlenecks(
    events: Iterable[FunnelEventRecord],
    contacts: Mapping[str, ContactStats] | None = None,
    as_of: datetime | None = None,
) -> list[BottleneckDetail]:
    """Rank funnel stages by dropout rate.

    Args:
        events: Funnel events, any order. A dropout only counts against a
            stage whose entry event is included, so callers analysing a
            date window also pass the event that put each student in
            their stage before the window opened.
        contacts: Consultation stats keyed by student id.
        as_of: Reference time for days since last contact, defaults to now.

    Returns:
        One BottleneckDetail per entered stage, worst dropout rate first.
        dropped_off itself is never ranked.
    """
    contacts = contacts or {}
    reference = as_of or utc_now()

    entries: Counter[str] = Counter()
    dropouts: Counter[str] = Counter()
    population: dict[str, set[str]] = defaultdict(set)

    for student_id, history in _by_student(events).items():
        current: str | None = None
        entered: Counter[str] = Counter()
        dropped: Counter[str] = Counter()
        for event in history:
            if event.is_dropout:
                stage = event.from_stage or current
                if stage and stage != _DROPPED and dropped[stage] < entered[stage]:
                    dropped[stage] += 1
                    dropouts[stage] += 1
                current = _DROPPED
                continue

            stage = event.stage
            if stage == current:
                continue
            entered[stage] += 1
            entries[stage] += 1
            population[stage].add(student_id)
            current = stage

    details = []
    for stage, count in entries.items():
        students = sorted(population[stage])
        stats = [contacts.get(s) or ContactStats(student_id=s) for s in students]
        contact_days = [
            days_between(s.last_contact_at, reference) for s in stats if s.last_contact_at
        ]
        ratio = dropouts[stage] / count
        details.append(
            BottleneckDetail(
                stage=stage,
                student_count=len(students),
                entries=count,
                dropouts=dropouts[stage],
                dropout_ratio=ratio,
                dropout_rate=percent(dropouts[stage], count),
                avg_consultations=_contact_average(stats, "consultation_count"),
                avg_phone=_contact_average(stats, "phone_count"),
                avg_text=_contact_average(stats, "text_count"),
                avg_visit=_contact_average(stats, "visit_count"),
                avg_days_since_last_contact=mean_rounded(contact_days),
            )
        )

    details.sort(key=lambda d: (-d.dropout_ratio, -d.entries, d.stage))
    return details


# =============================================================================
# Stage durations
# =============================================================================


def aggregate_stage_durations(events: Iterable[FunnelEventRecord]) -> list[StageDuration]:
    """Count stage transitions and average the days they took.

    The elapsed days of a transition come from the event's
    days_since_previous, or from the gap to the student's previous event
    when that was not recorded.

    Returns:
        StageDuration per (from_stage, to_stage), most frequent first.
    """
    counts: Counter[tuple[str, str]] = Counter()
    elapsed: dict[tuple[str, str], list[int]] = defaultdict(list)

    for history in _by_student(events).values():
        current: str | None = None
        previous: FunnelEventRecord | None = None
        for event in history:
            to_stage = _DROPPED if event.is_dropout else event.stage
            from_stage = event.from_stage or current
            if from_stage and from_stage != to_stage:
                key = (from_stage, to_stage)
                counts[key] += 1
                days = event.days_since_previous
                if days is None and previous is not None:
                    days = days_between(previous.event_date, event.event_date)
                if days is not None:
                    elapsed[key].append(days)
            current = to_stage
            previous = event

    durations = [
        StageDuration(
            from_stage=key[0],
            to_stage=key[1],
            count=count,
            avg_days=mean_rounded(elapsed[key]),
        )
        for key, count in counts.items()
    ]
    durations.sort(key=lambda d: (-d.count, d.from_stage, d.to_stage))
    return durations


# =============================================================================
# Journeys (cohorts, lead sources)
# =============================================================================


@dataclass
class _Journey:
    student_id: str
    lead_source: str | None
    first_contact: datetime | None = None
    tested_at: datetime | None = None
    enrolled_at: datetime | None = None


def _journeys(events: Iterable[FunnelEventRecord]) -> list[_Journey]:
    """First contact, first test and first registration of each student."""
    journeys = []
    for student_id, history in _by_student(events).items():
        journey = _Journey(student_id=student_id, lead_source=history[0].lead_source)
        for event in history:
            if event.event_type == FunnelEventType.FIRST_CONTACT.value:
                if journey.first_contact is None:
                    journey.first_contact = event.event_date
            elif journey.first_contact is None:
                continue
            elif event.event_type == FunnelEventType.TEST_COMPLETED.value:
                journey.tested_at = journey.tested_at or event.event_date
            elif event.event_type == FunnelEventType.REGISTRATION_COMPLETED.value:
                journey.enrolled_at = journey.enrolled_at or event.event_date
        journeys.append(journey)
    return journeys


def _cumulative(offsets: list[int]) -> list[int]:
    return [sum(1 for offset in offsets if offset <= month) for month in range(COHORT_MONTHS)]


def analyze_cohorts(
    events: Iterable[FunnelEventRecord],
    as_of: datetime | None = None,
    lead_source: str | None = None,
    start_date: date | None = None,
) -> list[CohortRow]:
    """Group leads by first-contact month and follow them for four months.

    A cohort whose month is fewer than four calendar months before as_of
    has not been observed long enough and is flagged is_ongoing.

    Args:
        events: Funnel events of every student.
        as_of: Reference time, defaults to now.
        lead_source: Only students from this source.
        start_date: Only students first contacted on or after this date.

    Returns:
        One CohortRow per cohort month, newest first.
    """
    reference = as_of or utc_now()
    cohorts: dict[str, list[_Journey]] = defaultdict(list)
    for journey in _journeys(events):
        if journey.first_contact is None:
            continue
        if lead_source and journey.lead_source != lead_source:
            continue
        if start_date and journey.first_contact.date() < start_date:
            continue
        cohorts[month_key(journey.first_contact)].append(journey)

    rows = []
    for key, members in cohorts.items():
        first = members[0].first_contact
        cohort_date = date(first.year, first.month, 1)
        test_offsets = [
            months_between(j.first_contact, j.tested_at) for j in members if j.tested_at
        ]
        enroll_offsets = [
            months_between(j.first_contact, j.enrolled_at) for j in members if j.enrolled_at
        ]
        tests = _cumulative(test_offsets)
        enrolls = _cumulative(enroll_offsets)
        total = len(members)
        rows.append(
            CohortRow(
                cohort_month=key,
                cohort_date=cohort_date,
                total_students=total,
                test_month_0=tests[0],
                test_month_1=tests[1],
                test_month_2=tests[2],
                test_month_3=tests[3],
                test_total=len(test_offsets),
                enroll_month_0=enrolls[0],
                enroll_month_1=enrolls[1],
                enroll_month_2=enrolls[2],
                enroll_month_3=enrolls[3],
                enroll_total=len(enroll_offsets),
                test_rate=percent(len(test_offsets), total),
                final_conversion_rate=percent(len(enroll_offsets), total),
                avg_days_to_enroll=mean_rounded(
                    days_between(j.first_contact, j.enrolled_at) for j in members if j.enrolled_at
                ),
                is_ongoing=months_between(cohort_date, reference) < COHORT_MONTHS,
            )
        )

    rows.sort(key=lambda r: r.cohort_month, reverse=True)
    return rows


def summarize_lead_sources(
    events: Iterable[FunnelEventRecord],
    contacts: Mapping[str, ContactStats] | None = None,
) -> list[LeadSourceMetrics]:
    """Conversion of first-contacted leads per lead source, largest first."""
    contacts = contacts or {}
    by_source: dict[str, list[_Journey]] = defaultdict(list)
    for journey in _journeys(events):
        if journey.first_contact is not None:
            by_source[journey.lead_source or UNKNOWN_LEAD_SOURCE].append(journey)

    metrics = []
    for source, members in by_source.items():
        tested = [j for j in members if j.tested_at]
        enrolled = [j for j in members if j.enrolled_at]
        metrics.append(
            LeadSourceMetrics(
                source=source,
                first_contacts=len(members),
                tests=len(tested),
                enrollments=len(enrolled),
                conversion_rate=percent(len(enrolled), len(members)),
                test_rate=percent(len(tested), len(members)),
                avg_days_to_enroll=mean_rounded(
                    days_between(j.first_contact, j.enrolled_at) for j in enrolled
                ),
                avg_consultations=mean_rounded(
                    (
                        contacts[j.student_id].consultation_count if j.student_id in contacts else 0
                        for j in enrolled
                    ),
                    1,
                ),
            )
        )

    metrics.sort(key=lambda m: (-m.first_contacts, m.source))
    return metrics


def summarize_period(
    events: Iterable[FunnelEventRecord],
    since: datetime,
    period: str,
) -> FunnelPeriodMetrics:
    """Consultation, test and enrollment counts of events on or after since.

    Average days come from days_since_previous and keep one decimal.
    """
    consultations = tests = enrollments = 0
    days_to_test: list[int] = []
    days_to_enroll: list[int] = []
    for event in events:
        if event.event_date < since:
            continue
        if event.event_type in CONSULTATION_EVENTS:
            consultations += 1
        elif event.event_type == FunnelEventType.TEST_COMPLETED.value:
            tests += 1
            if event.days_since_previous is not None:
                days_to_test.append(event.days_since_previous)
        elif event.event_type == FunnelEventType.REGISTRATION_COMPLETED.value:
            enrollments += 1
            if event.days_since_previous is not None:
                days_to_enroll.append(event.days_since_previous)

    return FunnelPeriodMetrics(
        period=period,
        since=since,
        consultations=consultations,
        tests=tests,
        enrollments=enrollments,
        consultation_to_test_rate=percent(tests, consultations),
        test_to_enroll_rate=percent(enrollments, tests),
        overall_conversion_rate=percent(enrollments, consultations),
        avg_days_to_test=mean_rounded(days_to_test, 1),
        avg_days_to_enroll=mean_rounded(days_to_enroll, 1),
    )
