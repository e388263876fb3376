"""Tests for report generation and the crosstab export."""

import pytest
from datetime import date, datetime

from epidash_src.data_items import DATA_ITEM_SHAPES, DataItem, ValueShape
from epidash_src.config import CodeSettings
from epidash_src.export import crosstab_frame, export_crosstab_csv
from epidash_src.models import (
    CaseClass,
    ClinicalRecords,
    Condition,
    Encounter,
    Gender,
    LabObservation,
    Location,
    LocationStay,
    Patient,
    Procedure,
    VitalStatus,
)
from epidash_src.report import DashboardReport, DashboardReportGenerator, generate_report

NOW = datetime(2021, 3, 10, 12)


def build_records() -> ClinicalRecords:
    locations = [
        Location("ward1", type_code="INN", physical_type_code="wa"),
        Location("icu1", type_code="ICU", physical_type_code="wa"),
    ]
    encounters = [
        Encounter("E1", "P1", CaseClass.INPATIENT, start=datetime(2021, 3, 1),
                  location_stays=[LocationStay("icu1", datetime(2021, 3, 2))]),
        Encounter("E2", "P2", CaseClass.INPATIENT, start=datetime(2021, 3, 1),
                  end=datetime(2021, 3, 5), vital_status=VitalStatus.DEAD,
                  location_stays=[LocationStay("icu1", datetime(2021, 3, 1), datetime(2021, 3, 5))]),
        Encounter("E3", "P3", CaseClass.INPATIENT, start=datetime(2021, 3, 3),
                  location_stays=[LocationStay("ward1", datetime(2021, 3, 3))]),
        Encounter("O1", "P4", CaseClass.OUTPATIENT, start=datetime(2021, 3, 2),
                  end=datetime(2021, 3, 2, 1)),
    ]
    return ClinicalRecords(
        encounters=encounters,
        conditions=[Condition("d1", "U07.1", case_id="E2")],
        observations=[
            LabObservation("o1", "94306-8", datetime(2021, 3, 1), case_id="E1", result_code="10828004"),
            LabObservation("o2", "94306-8", datetime(2021, 3, 3), case_id="E3", result_code="10828004"),
            LabObservation("o3", "94306-8", datetime(2021, 3, 2), case_id="O1", result_code="260385009"),
        ],
        procedures=[
            Procedure("x1", "182744004", datetime(2021, 3, 2), datetime(2021, 3, 3), case_id="E2"),
            Procedure("v1", "40617009", datetime(2021, 3, 1), datetime(2021, 3, 4), case_id="E2"),
        ],
        locations=locations,
        patients=[
            Patient("P1", birth_date=date(1955, 2, 1), gender=Gender.FEMALE),
            Patient("P2", birth_date=date(1940, 7, 1), gender=Gender.MALE),
            Patient("P3", birth_date=date(1990, 1, 1), gender=Gender.MALE),
            Patient("P4", gender=Gender.FEMALE),
        ],
    )


class TestReportGeneration:
    """Test the full pipeline."""

    @pytest.fixture
    def report(self):
        return generate_report(build_records(), NOW, settings=CodeSettings(), max_workers=1)

    def test_all_items_present(self, report):
        """Every data item has a value of the declared shape."""
        report.validate()
        assert set(report.items) == set(DataItem)

    def test_determinism(self):
        """Two runs over the same input give identical output."""
        records = build_records()
        first = generate_report(records, NOW, settings=CodeSettings(), max_workers=1).to_dict()
        second = generate_report(records, NOW, settings=CodeSettings(), max_workers=1).to_dict()
        assert first == second

    def test_parallel_matches_sequential(self):
        """Worker count does not change the result."""
        sequential = generate_report(build_records(), NOW, settings=CodeSettings(), max_workers=1)
        parallel = generate_report(build_records(), NOW, settings=CodeSettings(), max_workers=4)
        assert sequential.to_dict() == parallel.to_dict()

    def test_ecmo_maximum(self, report):
        """Overlapping ICU and ECMO yields ECMO as maximum."""
        assert report[DataItem.CUMULATIVE_MAX_TREATMENT_LEVEL]["icu_with_ecmo"] == 1
        assert report[DataItem.CUMULATIVE_CASENRS_ICU_ECMO] == ["E2"]

    def test_current_excludes_closed(self, report):
        """The closed encounter never appears in current items."""
        assert report[DataItem.CURRENT_CASES] == 2
        assert report[DataItem.CURRENT_CASENRS_ICU] == ["E1"]
        assert report[DataItem.CURRENT_CASENRS_NORMAL_WARD] == ["E3"]
        for item in DataItem:
            if item.value.startswith("current.") and item.shape == ValueShape.CASE_LIST:
                assert "E2" not in report[item]

    def test_timeline_sums_match_totals(self, report):
        """Daily sums equal the number of underlying events."""
        deaths = sum(n for _, n in report[DataItem.TIMELINE_DEATHS])
        assert deaths == report[DataItem.CUMULATIVE_GENDER_DEAD]["male"] == 1
        assert sum(n for _, n in report[DataItem.TIMELINE_TESTS]) == 3
        assert sum(n for _, n in report[DataItem.TIMELINE_TEST_POSITIVE]) == 2

    def test_length_of_stay_only_closed(self, report):
        """Only the closed encounter has a length of stay."""
        assert report[DataItem.LOS_HOSPITAL] == [96]
        assert report[DataItem.LOS_HOSPITAL_DEAD] == [96]
        assert report[DataItem.LOS_ICU] == [96]

    def test_to_dict_serialises_days(self, report):
        """Time series days are ISO strings in the dict view."""
        data = report.to_dict()
        assert data["generated_at"] == "2021-03-10T12:00:00"
        first_day, count = data["items"]["timeline.tests"][0]
        assert first_day == "2021-03-01"
        assert isinstance(count, int)
        assert list(data["items"]) == [item.value for item in DataItem]


class TestReportValidation:
    """Test report shape checks."""

    def test_missing_item(self):
        """A report without all items is invalid."""
        report = DashboardReport(generated_at=NOW, items={DataItem.CURRENT_CASES: 0})
        with pytest.raises(ValueError, match="missing"):
            report.validate()

    def test_wrong_shape(self):
        """A value of the wrong shape is rejected."""
        report = generate_report(ClinicalRecords(), NOW, settings=CodeSettings(), max_workers=1)
        report.items[DataItem.CURRENT_CASES] = ["E1"]
        with pytest.raises(ValueError, match="current.cases"):
            report.validate()

    def test_shapes_declared(self):
        """Every item declares a shape."""
        assert set(DATA_ITEM_SHAPES) == set(DataItem)
        assert DataItem.CURRENT_CASES.shape == ValueShape.SCALAR
        assert DataItem.TIMELINE_DEATHS.shape == ValueShape.TIME_SERIES
        assert DataItem.LOS_ICU_DEAD.shape == ValueShape.HOURS_LIST
        assert DataItem.CUMULATIVE_CASENRS_ICU.shape == ValueShape.CASE_LIST
        assert DataItem.CUMULATIVE_ZIPCODE.shape == ValueShape.MAPPING

    def test_empty_input(self):
        """Empty input yields a complete report of zeros."""
        report = generate_report(ClinicalRecords(), NOW, settings=CodeSettings(), max_workers=1)
        report.validate()
        assert report[DataItem.CURRENT_CASES] == 0
        assert report[DataItem.TIMELINE_DEATHS] == []


class TestCrosstabExport:
    """Test the CSV view of the current crosstab."""

    @pytest.fixture
    def report(self):
        return DashboardReportGenerator(CodeSettings(), max_workers=1).generate(build_records(), NOW)

    def test_frame(self, report):
        """Rows are levels, columns are genders plus total."""
        frame = crosstab_frame(report)
        assert list(frame.index) == ["normal_ward", "icu", "icu_with_ventilation", "icu_with_ecmo"]
        assert list(frame.columns) == ["male", "female", "diverse", "unknown", "total"]
        assert frame.loc["icu", "female"] == 1
        assert frame.loc["normal_ward", "male"] == 1
        assert frame["total"].sum() == report[DataItem.CURRENT_CASES]

    def test_csv_text(self, report):
        """CSV text has a header row and one row per level."""
        lines = export_crosstab_csv(report).splitlines()
        assert lines[0] == "treatment_level,male,female,diverse,unknown,total"
        assert "icu,0,1,0,0,1" in lines
        assert len(lines) == 5

    def test_csv_file(self, report, tmp_path):
        """The CSV can be written to a file."""
        path = tmp_path / "crosstab.csv"
        text = export_crosstab_csv(report, path)
        assert path.read_text() == text


class TestRecordAnomalies:
    """Test that single bad records never abort a run."""

    def generate(self, records: ClinicalRecords) -> DashboardReport:
        report = generate_report(records, NOW, settings=CodeSettings(), max_workers=1)
        report.validate()
        return report

    def test_inverted_encounter_next_to_valid_one(self, caplog):
        """An encounter ending before it starts only affects itself."""
        records = build_records()
        records.encounters.append(
            Encounter("E9", "P9", CaseClass.INPATIENT, start=datetime(2021, 3, 5),
                      end=datetime(2021, 3, 4), vital_status=VitalStatus.DEAD)
        )
        records.conditions.append(Condition("d9", "U07.1", case_id="E9"))
        records.patients.append(Patient("P9", gender=Gender.DIVERSE))

        report = self.generate(records)
        assert report[DataItem.LOS_HOSPITAL] == [96]
        assert report[DataItem.CUMULATIVE_GENDER]["diverse"] == 1
        assert sum(n for _, n in report[DataItem.TIMELINE_DEATHS]) == 1
        assert "E9" in caplog.text

    def test_inverted_icu_stay(self):
        """An ICU stay ending before it starts is ignored."""
        records = build_records()
        records.encounters[2].location_stays.append(
            LocationStay("icu1", datetime(2021, 3, 5), datetime(2021, 3, 4))
        )
        report = self.generate(records)
        assert report[DataItem.CURRENT_CASENRS_NORMAL_WARD] == ["E3"]

    def test_inverted_procedure(self):
        """A procedure ending before it starts is ignored."""
        records = build_records()
        records.procedures.append(
            Procedure("x9", "182744004", datetime(2021, 3, 3), datetime(2021, 3, 2), case_id="E1")
        )
        report = self.generate(records)
        assert report[DataItem.CURRENT_CASENRS_ICU] == ["E1"]
        assert report[DataItem.CURRENT_CASENRS_ICU_ECMO] == []


class TestMissingStart:
    """Test encounters without a period start."""

    @pytest.fixture
    def report(self):
        records = ClinicalRecords(
            encounters=[
                Encounter("E1", "P1", CaseClass.INPATIENT, start=None,
                          end=datetime(2021, 3, 4), vital_status=VitalStatus.DEAD),
            ],
            conditions=[Condition("d1", "U07.1", case_id="E1")],
            patients=[Patient("P1", gender=Gender.FEMALE)],
        )
        return generate_report(records, NOW, settings=CodeSettings(), max_workers=1)

    def test_no_time_bounded_entries(self, report):
        """The encounter adds no timeline events and no lengths of stay."""
        for item in DataItem:
            if item.shape in (ValueShape.TIME_SERIES, ValueShape.HOURS_LIST, ValueShape.PATIENT_STAYS):
                assert not report[item], item.value

    def test_counted_in_totals(self, report):
        """The encounter still counts in the unconditional totals."""
        assert report[DataItem.CUMULATIVE_MAX_TREATMENT_LEVEL]["normal_ward"] == 1
        assert report[DataItem.CUMULATIVE_GENDER]["female"] == 1
        assert report[DataItem.CUMULATIVE_GENDER_DEAD]["female"] == 1
        assert report[DataItem.CUMULATIVE_AGE]["unknown"] == 1
        assert report[DataItem.CUMULATIVE_CASENRS_NORMAL_WARD] == ["E1"]


class TestPatientLengthOfStayItems:
    """Test the per-patient length-of-stay items."""

    def test_reported_per_patient(self):
        """Hospital and ICU sums are keyed by patient with their case ids."""
        report = generate_report(build_records(), NOW, settings=CodeSettings(), max_workers=1)
        assert report[DataItem.LOS_HOSPITAL_PATIENT] == {"P2": {"hours": 96, "case_ids": ["E2"]}}
        assert report[DataItem.LOS_ICU_PATIENT] == {"P2": {"hours": 96, "case_ids": ["E2"]}}
        assert DataItem.LOS_ICU_PATIENT.shape == ValueShape.PATIENT_STAYS

    def test_serialised(self):
        """The dict view copies the nested stays."""
        report = generate_report(build_records(), NOW, settings=CodeSettings(), max_workers=1)
        data = report.to_dict()["items"]
        assert data["cumulative.lengthofstay.hospital.patient"]["P2"]["hours"] == 96

    def test_wrong_shape_rejected(self):
        """Plain hour lists are not valid per-patient values."""
        report = generate_report(ClinicalRecords(), NOW, settings=CodeSettings(), max_workers=1)
        report.items[DataItem.LOS_HOSPITAL_PATIENT] = [96]
        with pytest.raises(ValueError, match="hospital.patient"):
            report.validate()
