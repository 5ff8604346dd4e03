"""
Shared course-export fixtures.

The sample export has two units listed out of week order, one activity id
that no activity record backs, an unplaced activity, a quiz (untracked
type) and a criteria row pointing at a missing activity.
"""

import copy

import pytest


SAMPLE_SOURCE = {
    "course": {
        "id": 101,
        "number": "NURS-FP4020",
        "name": "Nursing Leadership",
        "credits": 3,
        "version": 2,
        "status": "ACTIVE",
        "updatedDate": 1700000000000,
        "launchDate": "2024-01-01",
        "courseDesignModelType": "GUIDED_PATH",
        "instanceOf": "COURSE",
        "createdBy": "author",
        "updatedBy": "editor",
    },
    "courseOverview": {
        "id": 900,
        "text": "<p>Grading scale: A = 93%, B = 83%,</p>\n<p>C = 73%, F = 60%</p>",
    },
    "units": [
        {
            "unit": {"id": 11, "title": "Week 2 Intro", "duration": 7},
            "activityIds": [203, 201, 202],
            "introductionId": 51,
            "courseResourceReferenceIds": [701],
        },
        {
            "unit": {"id": 10, "title": "Week 1 Intro", "duration": 7},
            "activityIds": [103, 999, 101, 102],
            "introductionId": 50,
            "courseResourceReferenceIds": [],
        },
    ],
    "activities": [
        {"activity": {"id": 101, "code": "u01s1", "title": "Read chapter one", "activityType": "STUDY",
                      "gradePoints": 0, "gradeWeight": 0, "activityTextId": 301}},
        {"activity": {"id": 102, "code": "u01d2", "title": "Leadership styles", "activityType": "Discussion",
                      "gradePoints": 25, "gradeWeight": 10}},
        {"activity": {"id": 103, "code": "u01a3", "title": "Team charter", "activityType": "ASSIGNMENT",
                      "gradePoints": 100, "gradeWeight": 40, "scoringGuideType": "RUBRIC"},
         "courseResourceReferenceIds": [702]},
        {"activity": {"id": 201, "code": "u02s1", "title": "Watch lecture", "activityType": "Study"}},
        {"activity": {"id": 202, "code": "u02q3", "title": "Check-in quiz", "activityType": "QUIZ",
                      "gradePoints": 10, "gradeWeight": 5}},
        {"activity": {"id": 203, "code": "u02a2", "title": "Reflection", "activityType": "assignment",
                      "gradePoints": 50, "gradeWeight": 20}},
        {"activity": {"id": 301, "code": "x", "title": "Retired task", "activityType": "ASSIGNMENT",
                      "gradePoints": 40}},
    ],
    "activityText": [
        {"id": 301, "text": "<p>Read&nbsp;chapter <b>1</b></p>"},
    ],
    "introductions": [
        {"id": 50, "text": "<p>Welcome to week 1</p>"},
        {"id": 51, "text": "Week two"},
    ],
    "competencies": [
        {"id": 1, "text": "Lead teams"},
        {"id": 2, "text": "Communicate"},
        {"id": 3, "text": "Unused"},
    ],
    "criteria": [
        {"activityId": 103, "competencyId": 1,
         "criterion": {"id": 401, "text": "Leadership", "gradeWeight": 50, "gradePoints": 50}},
        {"activityId": 103, "competencyId": 2,
         "criterion": {"id": 402, "text": "Writing", "gradeWeight": 50, "gradePoints": 50}},
        {"activityId": 102, "competencyId": 2, "criterion": None},
        {"activityId": 998, "competencyId": 1,
         "criterion": {"id": 403, "text": "Orphan", "gradeWeight": 10, "gradePoints": 10}},
    ],
    "performanceLevels": [
        {"criterionId": 401,
         "performanceLevel": {"performanceLevelType": "DISTINGUISHED", "gradePoints": 50, "text": "Excellent"}},
        {"criterionId": 401,
         "performanceLevel": {"performanceLevelType": "PROFICIENT", "gradePoints": 40, "text": "Good"}},
    ],
    "resources": [
        {"resource": {"id": 701, "resourceName": "Week 1 Reading List", "mediaType": "DOCUMENT",
                      "fileType": "pdf", "persistentLinks": "https://library.example.edu/list"}},
        {"resource": {"id": 702, "resourceName": "Rubric template", "mediaType": "", "fileType": "docx",
                      "annotation": "Use for the charter", "usageType": "REQUIRED"}},
        {"resource": {"id": 703, "resourceName": "Intro video", "mediaType": "VIDEO"}},
    ],
    "resourcesReferences": [
        {"courseResourceReference": {"id": 701, "resourceName": "Week 1 Reading List", "mediaType": "DOCUMENT"}},
        {"courseResourceReference": {"id": 702, "resourceName": "Assignment template", "mediaType": "DOCUMENT"}},
    ],
}


@pytest.fixture
def build_source():
    """Factory returning a fresh deep copy of the sample export."""
    return lambda: copy.deepcopy(SAMPLE_SOURCE)


@pytest.fixture
def source(build_source):
    return build_source()
