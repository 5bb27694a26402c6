"""Interactive admin console."""
import getpass
from datetime import date

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt, IntPrompt
from rich.table import Table

from school_portal import portal
from school_portal.config import get_settings
from school_portal.db import init_db
from school_portal.errors import PortalError, ValidationError
from school_portal.graduation import checklist, list_alumni
from school_portal.ledger import compute_share, effective_course_fee, fee_balance
from school_portal.log import configure_logging
from school_portal.models import CPD_RESULTS, DEFAULT_SUBSCRIPTION_FEE, GRADES, PAYMENT_METHODS, ExamGrade
from school_portal.registry import get_student, get_tutor, list_courses
from school_portal.seed import is_seeded, seed_all
from school_portal.subscriptions import current_practice_status

console = Console()


class CommandAborted(Exception):
    """Raised when the admin types 'q' at a prompt to abandon the current command."""


def ask(prompt: str, **kwargs) -> str:
    answer = Prompt.ask(prompt, **kwargs)
    if answer is not None and answer.strip().lower() in ("q", "menu"):
        raise CommandAborted()
    return answer


def ask_float(prompt: str, **kwargs) -> float:
    answer = ask(prompt, **kwargs)
    try:
        return float(answer)
    except (TypeError, ValueError):
        raise ValidationError(f"{prompt}: {answer!r} is not a number")


def show_welcome():
    console.print(Panel(
        "[bold]School Portal[/bold]\n[dim]Assignments, settlements, graduation and alumni[/dim]",
        title="Admin Console", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("assignments", "Pending / assigned / cancelled students per course"),
        ("assign", "Assign a student to a tutor"),
        ("cancel", "Cancel an enrollment"),
        ("finance", "Revenue and tutor settlements"),
        ("pay", "Record a tutor payment"),
        ("installment", "Record a student fee installment"),
        ("exam", "Add an exam to a student"),
        ("grades", "Grade a student's exams"),
        ("graduate", "Promote a student to alumnus"),
        ("alumni", "List alumni"),
        ("cpd", "Record an alumnus CPD result"),
        ("subscriptions", "Yearly subscription stats"),
        ("history", "Practicing history of an alumnus"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def cmd_assignments(ctx, db_path: str):
    names = {c.id: c.name for c in list_courses(db_path)}
    for course_id, buckets in portal.list_assignments(ctx, db_path).items():
        table = Table(title=f"{names[course_id]} ({course_id})")
        table.add_column("Student")
        table.add_column("Status")
        table.add_column("Tutor / Notes")
        colors = {"pending": "yellow", "assigned": "green", "cancelled": "red"}
        for bucket, enrollments in buckets.items():
            for e in enrollments:
                detail = e.tutor_id if bucket == "assigned" else (e.admin_notes or "")
                table.add_row(e.student_id, f"[{colors[bucket]}]{e.assignment_status}[/{colors[bucket]}]", detail or "")
        console.print(table)


def cmd_assign(ctx, db_path: str):
    course_id = ask("Course id")
    student_id = ask("Student id")
    tutor_id = ask("Tutor id")
    enrollment = portal.assign(ctx, db_path, course_id, student_id, tutor_id)
    console.print(f"[green]{enrollment.student_id} assigned to {enrollment.tutor_id}[/green]")


def cmd_cancel(ctx, db_path: str):
    course_id = ask("Course id")
    student_id = ask("Student id")
    reason = ask("Reason")
    portal.cancel(ctx, db_path, course_id, student_id, reason)
    console.print(f"[yellow]Enrollment of {student_id} cancelled[/yellow]")


def cmd_finance(ctx, db_path: str):
    stats = portal.finance_overview(ctx, db_path)
    console.print(Panel(
        f"Total revenue: [bold]{stats['totalRevenue']:,.2f}[/bold]\n"
        f"Paid to tutors: [green]{stats['totalPaidToTutors']:,.2f}[/green]\n"
        f"Pending to tutors: [yellow]{stats['totalPendingToTutors']:,.2f}[/yellow]\n"
        f"Admin revenue: [bold]{stats['adminRevenue']:,.2f}[/bold]\n"
        f"[dim]{stats['totalStudents']} students across {stats['totalTutors']} tutors[/dim]",
        title="Finance Overview", border_style="blue",
    ))


def cmd_pay(ctx, db_path: str):
    tutor_id = ask("Tutor id")
    tutor = get_tutor(db_path, tutor_id)
    student_id = ask("Student id")
    entry = next((e for e in tutor.my_students + tutor.certified_students if e.student_id == student_id), None)
    suggested = compute_share(effective_course_fee(entry.course_fee, student_id)) if entry else 0
    amount = ask_float("Amount", default=str(suggested))
    phone = ask("Phone", **({"default": tutor.phone} if tutor.phone else {}))
    transaction_id = ask("Transaction id")
    settlement = portal.process_payment(ctx, db_path, tutor_id, student_id, amount, phone, transaction_id)
    console.print(f"[green]Paid {settlement.amount:,.2f} to {tutor.name} for {student_id}[/green]")


def cmd_installment(ctx, db_path: str):
    student_id = ask("Student id")
    student = get_student(db_path, student_id)
    amount = ask_float("Amount", default=str(fee_balance(student)))
    student = portal.record_fee_payment(ctx, db_path, student_id, amount)
    console.print(f"[green]Paid so far {student.upfront_fee:,.2f}, balance {fee_balance(student):,.2f}[/green]")


def cmd_exam(ctx, db_path: str):
    student_id = ask("Student id")
    name = ask("Exam name")
    score = ask("Grade (blank if not yet graded)", default="")
    student = portal.add_exam(ctx, db_path, student_id, name, score)
    console.print(f"[green]{student.name} now has {len(student.exams)} exam(s)[/green]")


def cmd_grades(ctx, db_path: str):
    student_id = ask("Student id")
    student = get_student(db_path, student_id)
    if not student.exams:
        console.print("[yellow]No exams recorded for this student.[/yellow]")
        return
    grades = []
    for i, exam in enumerate(student.exams):
        current = {"default": exam.score} if exam.score else {}
        score = ask(exam.name, choices=list(GRADES), **current)
        grades.append(ExamGrade(exam_index=i, score=score))
    portal.update_exam_grades(ctx, db_path, student_id, grades)
    console.print("[green]Grades saved.[/green]")


def cmd_graduate(ctx, db_path: str):
    student_id = ask("Student id")
    student = get_student(db_path, student_id)
    result = checklist(student)
    mark = {True: "[green]yes[/green]", False: "[red]no[/red]"}
    console.print(f"  Fee complete: {mark[result['feeComplete']]} (balance {fee_balance(student):,.0f})")
    console.print(f"  Grades complete: {mark[result['gradesComplete']]}")
    alumnus = portal.graduate(ctx, db_path, student_id)
    console.print(f"[green]{alumnus.name} graduated with GPA {alumnus.gpa:.2f}[/green]")


def cmd_alumni(db_path: str):
    table = Table(title="Alumni")
    table.add_column("Id")
    table.add_column("Name")
    table.add_column("Course")
    table.add_column("GPA", justify="right")
    table.add_column("Graduated")
    table.add_column("Practicing")
    for a in list_alumni(db_path):
        status = current_practice_status(a)
        color = "green" if status == "active" else "red"
        table.add_row(a.id, a.name, a.course_id or "", f"{a.gpa:.2f}", a.graduation_date or "",
                      f"[{color}]{status}[/{color}]")
    console.print(table)


def cmd_cpd(ctx, db_path: str):
    alumnus_id = ask("Alumnus id")
    year = IntPrompt.ask("Year", default=date.today().year)
    result = ask("Result", choices=list(CPD_RESULTS), default="pass")
    score = ask_float("CPD points", default="0")
    remarks = ask("Remarks", default="")
    portal.record_cpd(ctx, db_path, alumnus_id, year=year, date_taken=date.today().isoformat(),
                      result=result, score=score, remarks=remarks)
    console.print(f"[green]CPD {year} recorded for {alumnus_id}[/green]")


def cmd_subscriptions(ctx, db_path: str):
    year = IntPrompt.ask("Year", default=date.today().year)
    if ask("Record a payment first?", choices=["y", "n"], default="n") == "y":
        alumnus_id = ask("Alumnus id")
        amount = ask_float("Amount", default=str(DEFAULT_SUBSCRIPTION_FEE))
        method = ask("Payment method", choices=list(PAYMENT_METHODS), default="mpesa")
        transaction_id = ask("Transaction id", default="")
        portal.record_subscription_payment(ctx, db_path, alumnus_id, year, amount, method, transaction_id)
    stats = portal.subscription_stats(ctx, db_path, year)
    console.print(
        f"\n  {year}: [green]{stats['paid']} paid[/green]  |  [yellow]{stats['pending']} pending[/yellow]  |  "
        f"[red]{stats['expired']} expired[/red]  |  Revenue [bold]{stats['totalRevenue']:,.2f}[/bold]"
    )
    for method, amount in stats["revenueByMethod"].items():
        console.print(f"    {method:<8} {amount:,.2f}")
    if stats["paidAlumni"]:
        table = Table(title=f"Paid Alumni - {year}")
        table.add_column("Name")
        table.add_column("Amount", justify="right")
        table.add_column("Method")
        table.add_column("Transaction")
        for p in stats["paidAlumni"]:
            table.add_row(p["name"], f"{p['amount']:,.2f}", p["paymentMethod"], p["transactionId"] or "")
        console.print(table)


def cmd_history(ctx, db_path: str):
    alumnus_id = ask("Alumnus id")
    history = portal.practicing_history(ctx, db_path, alumnus_id)
    if not history:
        console.print("[yellow]No CPD records yet.[/yellow]")
        return
    table = Table(title="Practicing History")
    table.add_column("Year", justify="right")
    table.add_column("Status")
    table.add_column("CPD Points", justify="right")
    for row in history:
        active = row["status"] == "active"
        table.add_row(
            str(row["year"]),
            "[green]Active[/green]" if active else "[red]Inactive[/red]",
            "--" if row["cpdPoints"] is None else f"{row['cpdPoints']:g}",
        )
    console.print(table)


def main():
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    db_path = settings.db_path
    init_db(db_path)
    first_run = not is_seeded(db_path)
    if first_run:
        console.print("[dim]Setting up demo school...[/dim]")
    seed_all(db_path)
    if first_run:
        console.print("[green]Ready![/green]\n")

    ctx = portal.AuthContext(actor=getpass.getuser())
    show_welcome()

    commands = {
        "assignments": lambda: cmd_assignments(ctx, db_path),
        "assign": lambda: cmd_assign(ctx, db_path),
        "cancel": lambda: cmd_cancel(ctx, db_path),
        "finance": lambda: cmd_finance(ctx, db_path),
        "pay": lambda: cmd_pay(ctx, db_path),
        "installment": lambda: cmd_installment(ctx, db_path),
        "exam": lambda: cmd_exam(ctx, db_path),
        "grades": lambda: cmd_grades(ctx, db_path),
        "graduate": lambda: cmd_graduate(ctx, db_path),
        "alumni": lambda: cmd_alumni(db_path),
        "cpd": lambda: cmd_cpd(ctx, db_path),
        "subscriptions": lambda: cmd_subscriptions(ctx, db_path),
        "history": lambda: cmd_history(ctx, db_path),
    }
    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="assignments").strip().lower()
        if choice in ("quit", "exit", "q"):
            console.print("[dim]Bye.[/dim]")
            break
        try:
            if choice in commands:
                commands[choice]()
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except CommandAborted:
            console.print("[dim]Cancelled.[/dim]")
        except PortalError as e:
            console.print(f"[red]{e.message}[/red]")
        except KeyboardInterrupt:
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except Exception as e:
            console.print(f"[red]Error: {e}[/red]")


if __name__ == "__main__":
    main()
