from conftest import CATEGORY_MARKER, PROMPTS_DIR, FakeGenerator

from librarian.category_inference import CategoryInferencer


def test_model_category_is_normalized():
    generator = FakeGenerator({CATEGORY_MARKER: 'Đây là kết quả: {"category": "lịch sử"}'})
    inferencer = CategoryInferencer(generator, PROMPTS_DIR)
    assert inferencer.infer("Đại Việt sử ký", "Ngô Sĩ Liên") == "History"
    prompt = generator.calls_with(CATEGORY_MARKER)[0]
    assert "Đại Việt sử ký" in prompt
    assert "- Philosophy" in prompt


def test_generator_failure_falls_back_to_rules():
    inferencer = CategoryInferencer(FakeGenerator(fail=True), PROMPTS_DIR)
    assert inferencer.infer("Chiến tranh và hoà bình", "Lev Tolstoy") == "History"


def test_unparseable_output_falls_back_to_rules():
    inferencer = CategoryInferencer(FakeGenerator({CATEGORY_MARKER: "Văn học nhé!"}), PROMPTS_DIR)
    assert inferencer.infer("Lập trình Python cơ bản", "Nguyễn Thanh Tùng") == "Technology"


def test_catch_all_answer_falls_back_to_rules():
    generator = FakeGenerator({CATEGORY_MARKER: '{"category": "Unknown"}'})
    inferencer = CategoryInferencer(generator, PROMPTS_DIR)
    assert inferencer.infer("Nguồn gốc các loài", "Charles Darwin") == "Science"


def test_no_generator_and_no_rule_gives_catch_all():
    inferencer = CategoryInferencer(None, PROMPTS_DIR)
    assert inferencer.infer("Foo", "Bar") == "Unknown"


def test_missing_prompt_file_is_absorbed(tmp_dir):
    inferencer = CategoryInferencer(FakeGenerator({CATEGORY_MARKER: '{"category": "Science"}'}), tmp_dir)
    assert inferencer.infer("The Art of War", "Sun Tzu") == "History"
