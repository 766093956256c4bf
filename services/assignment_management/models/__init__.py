from .assignments import Assignment, SubmissionGroup, StudentSubmission, SubmissionState
